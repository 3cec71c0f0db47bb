# -*- coding: utf-8 -*-
"""
关系账本
- 关系 = 输入侧词 -> 输出侧词 的有向加权配对（dependency / association / strength / confidence）
- 主账本与双向账本各自保证：同一有序词对（大小写不敏感）最多一个关系对象
- 重复创建 = 强化已有关系（learning_count 递增），不会出现重复对象
- 时间衰减：超过 1 天未使用的关系按天数减弱，权重下限为 1，永不删除
"""

import logging
import time

from .lexicon import fold

logger = logging.getLogger(__name__)

DAY_SECONDS = 86400

MIN_WEIGHT = 1.0
MAX_WEIGHT = 100.0
MIN_FEEDBACK = -100.0
MAX_FEEDBACK = 100.0
MIN_DECAYED_CONFIDENCE = 0.1
MAX_WEAKEN_AMOUNT = 15.0

DEFAULT_DEPENDENCY = 50
DEFAULT_ASSOCIATION = 50
DEFAULT_FORGET_RATE = 0.08
DUPLICATE_REINFORCE_AMOUNT = 1.0

# 双向关系：角色互换（输出词 -> 输入词），初始权重略低
BIDIRECTIONAL_DEPENDENCY = 45
BIDIRECTIONAL_ASSOCIATION = 45

RELATION_TYPES = ("semantic", "temporal", "causal", "hierarchical")


def _clamp(value, low, high):
    return max(low, min(high, value))


def _pair_key(source, target):
    return (fold(source), fold(target))


def create_relation(source_word, target_word, dependency=DEFAULT_DEPENDENCY,
                    association=DEFAULT_ASSOCIATION, frequency=1, order=1,
                    feedback=0, bidirectional=False, context=None,
                    relation_type="semantic", now=None, relation_id=None):
    """
    新建一个关系字典。

    参数:
        source_word: str - 源词（输入侧）
        target_word: str - 目标词（输出侧）
        dependency / association: float - 1~100
        frequency: int - 共现次数
        order: int - 源词在原句中的位置
        feedback: float - 用户反馈 -100~100
        bidirectional: bool - 是否允许反向传播
        context: list | None - 自由上下文
        relation_type: str - semantic / temporal / causal / hierarchical
    返回:
        dict - 关系
    """
    if relation_type not in RELATION_TYPES:
        raise ValueError(f"未知的 relation_type: {relation_type!r}")
    if now is None:
        now = time.time()

    dependency = _clamp(float(dependency), MIN_WEIGHT, MAX_WEIGHT)
    association = _clamp(float(association), MIN_WEIGHT, MAX_WEIGHT)
    return {
        "id": relation_id,
        "source_word": source_word,
        "target_word": target_word,
        "dependency": dependency,
        "association": association,
        "strength": (dependency + association) / 2,
        "confidence": 0.5,
        "feedback": _clamp(float(feedback), MIN_FEEDBACK, MAX_FEEDBACK),
        "frequency": frequency,
        "order": order,
        "bidirectional": bool(bidirectional),
        "relation_type": relation_type,
        "context": list(context or []),
        "learning_count": 1,
        "created_at": now,
        "last_used_at": now,
    }


def reinforce_relation(relation, amount, feedback_delta=None, now=None):
    """
    强化关系（原地修改并返回）。

    dependency / association 各加 amount 并截断到 [1, 100]，strength 取两者均值，
    learning_count + 1，confidence = clamp(0.5 + learning_count / 20, 0, 1)。

    参数:
        relation: dict
        amount: float - 强化量（可为负）
        feedback_delta: float | None - 反馈增量，结果截断到 [-100, 100]
    返回:
        dict - 同一个关系对象
    """
    if now is None:
        now = time.time()

    relation["dependency"] = _clamp(relation["dependency"] + amount, MIN_WEIGHT, MAX_WEIGHT)
    relation["association"] = _clamp(relation["association"] + amount, MIN_WEIGHT, MAX_WEIGHT)
    relation["learning_count"] += 1
    relation["last_used_at"] = now
    relation["strength"] = (relation["dependency"] + relation["association"]) / 2

    if feedback_delta is not None:
        relation["feedback"] = _clamp(relation["feedback"] + feedback_delta,
                                      MIN_FEEDBACK, MAX_FEEDBACK)

    relation["confidence"] = _clamp(0.5 + relation["learning_count"] / 20, 0.0, 1.0)
    return relation


def weaken_relations(relations, decay_factor=DEFAULT_FORGET_RATE, now=None):
    """
    遗忘扫描：超过 1 天未使用的关系按 min(15, decay_factor * 天数) 减弱。

    dependency / association / strength 下限为 1；confidence 减去 amount/100，下限 0.1。
    1 天内用过的关系保持不变。

    参数:
        relations: iterable[dict]
        decay_factor: float - 每天的减弱量
        now: float | None
    返回:
        list[dict] - 实际被减弱的关系
    """
    if now is None:
        now = time.time()

    changed = []
    for rel in relations:
        days = (now - rel["last_used_at"]) / DAY_SECONDS
        if days <= 1:
            continue
        amount = min(MAX_WEAKEN_AMOUNT, decay_factor * days)
        if amount <= 0:
            continue
        rel["dependency"] = max(MIN_WEIGHT, rel["dependency"] - amount)
        rel["association"] = max(MIN_WEIGHT, rel["association"] - amount)
        rel["strength"] = max(MIN_WEIGHT, rel["strength"] - amount)
        rel["confidence"] = max(MIN_DECAYED_CONFIDENCE, rel["confidence"] - amount / 100)
        changed.append(rel)
    return changed


class RelationLedger:
    """
    主账本 + 双向账本。

    主账本: (source, target) -> 关系，source 为输入侧词、target 为输出侧词
    双向账本: 角色互换的关系（source 为输出侧词），由批量训练按采样率写入

    参数:
        clock: callable - 时间源，默认 time.time
    """

    def __init__(self, clock=time.time):
        self.clock = clock
        self._primary = {}        # (source_lower, target_lower) -> relation
        self._bidirectional = {}
        self._by_source = {}      # source_lower -> set(keys)，仅主账本
        self._next_id = 1

    # ========================
    # 基本访问
    # ========================

    def __len__(self):
        return len(self._primary) + len(self._bidirectional)

    def relations(self):
        return list(self._primary.values())

    def bidirectional_relations(self):
        return list(self._bidirectional.values())

    def get(self, source, target):
        return self._primary.get(_pair_key(source, target))

    def get_bidirectional(self, source, target):
        return self._bidirectional.get(_pair_key(source, target))

    def from_source(self, word):
        """主账本中以 word 为源词的关系。"""
        keys = self._by_source.get(fold(word), ())
        return [self._primary[k] for k in sorted(keys)]

    def _generate_id(self):
        rid = f"rel_{self._next_id:06d}"
        self._next_id += 1
        return rid

    # ========================
    # 写入
    # ========================

    def create(self, source_word, target_word, dependency=DEFAULT_DEPENDENCY,
               association=DEFAULT_ASSOCIATION, frequency=1, order=1,
               feedback=0, bidirectional=False, context=None,
               relation_type="semantic"):
        """
        在主账本中创建关系；同一有序词对已存在时强化它并累加 frequency。

        返回:
            dict - 新建或被强化的关系
        """
        return self._create_in(self._primary, source_word, target_word,
                               dependency, association, frequency, order,
                               feedback, bidirectional, context, relation_type)

    def create_bidirectional(self, source_word, target_word,
                             dependency=BIDIRECTIONAL_DEPENDENCY,
                             association=BIDIRECTIONAL_ASSOCIATION,
                             frequency=1, order=1, feedback=0, context=None,
                             relation_type="semantic"):
        """在双向账本中创建（或强化）一条 bidirectional=True 的关系。"""
        return self._create_in(self._bidirectional, source_word, target_word,
                               dependency, association, frequency, order,
                               feedback, True, context, relation_type)

    def _create_in(self, table, source_word, target_word, dependency,
                   association, frequency, order, feedback, bidirectional,
                   context, relation_type):
        if not source_word or not target_word:
            raise ValueError("source_word 和 target_word 不能为空")

        key = _pair_key(source_word, target_word)
        existing = table.get(key)
        if existing is not None:
            existing["frequency"] += frequency
            return reinforce_relation(existing, DUPLICATE_REINFORCE_AMOUNT,
                                      now=self.clock())

        rel = create_relation(source_word, target_word, dependency, association,
                              frequency, order, feedback, bidirectional,
                              context, relation_type, now=self.clock(),
                              relation_id=self._generate_id())
        table[key] = rel
        if table is self._primary:
            self._by_source.setdefault(key[0], set()).add(key)
        return rel

    def reinforce(self, relation, amount, feedback_delta=None):
        return reinforce_relation(relation, amount, feedback_delta, now=self.clock())

    def reinforce_between(self, words_a, words_b, amount):
        """
        强化两组词之间的全部关系（两个账本、两种方向都算）。
        回答成功后由宿主调用，以此让图随使用逐步加强。

        返回:
            int - 被强化的关系数量
        """
        set_a = {fold(w) for w in words_a}
        set_b = {fold(w) for w in words_b}
        count = 0
        for table in (self._primary, self._bidirectional):
            for (src, tgt), rel in table.items():
                if (src in set_a and tgt in set_b) or (src in set_b and tgt in set_a):
                    reinforce_relation(rel, amount, now=self.clock())
                    count += 1
        return count

    def apply_feedback(self, source_word, target_word, delta, amount=0.0):
        """对主账本中的一条关系施加用户反馈；关系不存在返回 None。"""
        rel = self.get(source_word, target_word)
        if rel is None:
            return None
        return reinforce_relation(rel, amount, feedback_delta=delta, now=self.clock())

    def weaken(self, decay_factor=DEFAULT_FORGET_RATE, now=None):
        """对两个账本执行遗忘扫描，返回被减弱的关系数量。"""
        if now is None:
            now = self.clock()
        changed = weaken_relations(self._primary.values(), decay_factor, now)
        changed += weaken_relations(self._bidirectional.values(), decay_factor, now)
        if changed:
            logger.info("遗忘扫描: %d 条关系被减弱", len(changed))
        return len(changed)

    # ========================
    # 序列化
    # ========================

    def copy(self):
        """深拷贝（共享 clock），批量训练时用作工作副本。"""
        return RelationLedger.from_dict(self.to_dict(), clock=self.clock)

    def to_dict(self):
        return {
            "next_id": self._next_id,
            "relations": [dict(r, context=list(r["context"])) for r in self._primary.values()],
            "bidirectional_relations": [dict(r, context=list(r["context"]))
                                        for r in self._bidirectional.values()],
        }

    @classmethod
    def from_dict(cls, data, clock=time.time):
        ledger = cls(clock=clock)
        for raw in data.get("relations", []):
            rel = dict(raw, context=list(raw.get("context", [])))
            key = _pair_key(rel["source_word"], rel["target_word"])
            ledger._primary[key] = rel
            ledger._by_source.setdefault(key[0], set()).add(key)
        for raw in data.get("bidirectional_relations", []):
            rel = dict(raw, context=list(raw.get("context", [])))
            ledger._bidirectional[_pair_key(rel["source_word"], rel["target_word"])] = rel
        ledger._next_id = data.get("next_id", len(ledger) + 1)
        return ledger

    def get_stats(self):
        primary = list(self._primary.values())
        return {
            "relations": len(self._primary),
            "bidirectional_relations": len(self._bidirectional),
            "mean_strength": (sum(r["strength"] for r in primary) / len(primary)
                              if primary else 0.0),
            "mean_confidence": (sum(r["confidence"] for r in primary) / len(primary)
                                if primary else 0.0),
        }
