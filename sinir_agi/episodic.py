# -*- coding: utf-8 -*-
"""
情景记忆存储
- 短期 / 长期两级记忆 + 主题簇
- 每条记忆以 content 字符串为身份（同内容即同一条记忆）
- 情感分（正负关键词 ±10）与类别（关键词桶）
- 相似检索 find_similar / 上下文检索 get_contextual（后者会强化命中的记忆）
- 遗忘曲线：短期超过 1 天、长期超过 7 天后按天数降低 relevance（下限 0，不自动删除）
- 巩固：足够旧且足够重要的短期记忆迁入长期
- 每日提醒：从长期记忆中挑出重要 / 熟练 / 情感强烈的旧记忆
"""

import logging
import time

import numpy as np

from .lexicon import fold

logger = logging.getLogger(__name__)

DAY_SECONDS = 86400
MEMORY_TYPES = ("short-term", "long-term")

DEFAULT_MAX_SHORT_TERM = 100
DEFAULT_MAX_LONG_TERM = 1000
DEFAULT_MAX_CLUSTERS = 50
DEFAULT_FORGETTING_RATE = 0.05
DEFAULT_CLUSTER_THRESHOLD = 20
DEFAULT_CLUSTER_MEMBER_CAP = 20

INITIAL_RELEVANCE = 100.0
PROMOTION_RELEVANCE = 50
PROMOTION_LEARNING_COUNT = 2
CONSOLIDATION_BONUS = 10
CLUSTER_INITIAL_STRENGTH = 50
CLUSTER_TOPIC_WORDS = 3
SIMILAR_LIMIT_ON_ADD = 3
CONTEXTUAL_THRESHOLD = 20
CONTEXTUAL_LIMIT = 10
CONTEXTUAL_REINFORCE = 5
SIMILAR_THRESHOLD = 10
CLUSTER_MEMBER_BONUS = 10

POSITIVE_KEYWORDS = ["harika", "güzel", "mükemmel", "iyi", "sevindim", "teşekkür", "mutlu"]
NEGATIVE_KEYWORDS = ["kötü", "üzgün", "zor", "problem", "hata", "kızgın", "üzüldüm"]

MEMORY_CATEGORIES = [
    ("teknoloji", ["bilgisayar", "yazılım", "uygulama", "telefon", "internet"]),
    ("sağlık", ["sağlık", "hastane", "doktor", "ilaç", "tedavi"]),
    ("eğitim", ["okul", "öğrenci", "öğretmen", "ders", "öğrenmek"]),
    ("günlük", ["bugün", "dün", "yarın", "şimdi", "sonra"]),
    ("duygusal", ["sevmek", "üzülmek", "mutlu", "kızgın", "hissetmek"]),
]

TURKISH_MONTHS = [
    "Ocak", "Şubat", "Mart", "Nisan", "Mayıs", "Haziran",
    "Temmuz", "Ağustos", "Eylül", "Ekim", "Kasım", "Aralık",
]


def calculate_emotional_score(content):
    """每个命中正面词的词 +10，命中负面词的词 -10，截断到 [-100, 100]。"""
    score = 0
    for word in fold(content).split():
        if any(p in word for p in POSITIVE_KEYWORDS):
            score += 10
        if any(n in word for n in NEGATIVE_KEYWORDS):
            score -= 10
    return max(-100, min(100, score))


def categorize_memory(content):
    """关键词桶分类，未命中返回 "genel"。"""
    lower = fold(content)
    for name, keywords in MEMORY_CATEGORIES:
        if any(k in lower for k in keywords):
            return name
    return "genel"


def format_turkish_date(ts):
    t = time.localtime(ts)
    return f"{t.tm_mday} {TURKISH_MONTHS[t.tm_mon - 1]} {t.tm_year}"


class EpisodicMemory:
    """
    情景记忆存储。

    参数:
        max_short_term: int - 短期记忆容量
        max_long_term: int - 长期记忆容量
        max_clusters: int - 主题簇上限
        forgetting_rate: float - 遗忘速率（短期 ×2，长期 ÷ learning_count）
        cluster_threshold: int - 加入已有簇所需的最低匹配分（严格大于）
        cluster_member_cap: int - 单个簇的成员上限
        rng: np.random.Generator | None - 簇主题词抽取 / 提醒洗牌的随机源
        clock: callable - 时间源，默认 time.time
    """

    def __init__(self, max_short_term=DEFAULT_MAX_SHORT_TERM,
                 max_long_term=DEFAULT_MAX_LONG_TERM,
                 max_clusters=DEFAULT_MAX_CLUSTERS,
                 forgetting_rate=DEFAULT_FORGETTING_RATE,
                 cluster_threshold=DEFAULT_CLUSTER_THRESHOLD,
                 cluster_member_cap=DEFAULT_CLUSTER_MEMBER_CAP,
                 rng=None, clock=time.time):
        self.max_short_term = max_short_term
        self.max_long_term = max_long_term
        self.max_clusters = max_clusters
        self.forgetting_rate = forgetting_rate
        self.cluster_threshold = cluster_threshold
        self.cluster_member_cap = cluster_member_cap
        self.rng = rng if rng is not None else np.random.default_rng()
        self.clock = clock

        self.short_term = []
        self.long_term = []
        self.clusters = []
        self._next_cluster_id = 1

    def __len__(self):
        return len(self.short_term) + len(self.long_term)

    def all_memories(self):
        return self.short_term + self.long_term

    def find(self, content):
        """按 content 精确查找记忆（先短期后长期）。"""
        for memory in self.all_memories():
            if memory["content"] == content:
                return memory
        return None

    def _age_days(self, memory, now):
        return (now - memory["timestamp"]) / DAY_SECONDS

    def _recency_score(self, memory, now):
        # 24 小时内从 100 线性降到 0
        return max(0.0, 100.0 * (1.0 - self._age_days(memory, now)))

    # ================================================================
    # 写入
    # ================================================================

    def add_memory(self, content, type="short-term", related=None, context=None):
        """
        新增一条记忆并建立关联。

        内容已存在时视为同一条记忆：learning_count + 1 并返回已有记忆。

        参数:
            content: str - 记忆内容
            type: str - "short-term" | "long-term"
            related: list[str] | None - 自由关联内容
            context: str | None - 上下文说明
        返回:
            dict - 记忆
        """
        if type not in MEMORY_TYPES:
            raise ValueError(f"未知的记忆类型: {type!r}，可选: {MEMORY_TYPES}")
        if not content or not content.strip():
            raise ValueError("content 不能为空")

        existing = self.find(content)
        if existing is not None:
            existing["learning_count"] += 1
            for item in related or []:
                if item not in existing["related"]:
                    existing["related"].append(item)
            return existing

        connections = [m["content"] for m in self.find_similar(content, SIMILAR_LIMIT_ON_ADD)]
        memory = {
            "content": content,
            "timestamp": self.clock(),
            "relevance": INITIAL_RELEVANCE,
            "type": type,
            "related": list(related or []),
            "context": context or "",
            "emotional_score": calculate_emotional_score(content),
            "connections": connections,
            "category": categorize_memory(content),
            "learning_count": 1,
        }

        if type == "short-term":
            self.short_term.append(memory)
            if len(self.short_term) > self.max_short_term:
                self._process_short_term()
        else:
            self.long_term.append(memory)
        if len(self.long_term) > self.max_long_term:
            self._consolidate_long_term()

        self._update_clusters(memory)
        return memory

    def _should_promote(self, memory):
        return (memory["relevance"] > PROMOTION_RELEVANCE
                or memory["learning_count"] > PROMOTION_LEARNING_COUNT)

    def _process_short_term(self):
        """短期超容量：旧记忆中最不相关的一条视情况迁入长期后移出；无旧记忆则丢弃最不相关者。"""
        now = self.clock()
        old = [m for m in self.short_term if self._age_days(m, now) > 1]

        if old:
            memory = min(old, key=lambda m: m["relevance"])
            if self._should_promote(memory):
                memory["type"] = "long-term"
                self.long_term.append(memory)
            self.short_term.remove(memory)
        else:
            memory = min(self.short_term, key=lambda m: m["relevance"])
            self.short_term.remove(memory)
            logger.debug("短期记忆超容量，丢弃: %s", memory["content"][:30])

    def _consolidate_long_term(self):
        """长期超容量：丢弃 relevance * 1/(1+age) 最低的一条。"""
        now = self.clock()
        memory = min(self.long_term,
                     key=lambda m: m["relevance"] * (1.0 / (1.0 + max(0.0, now - m["timestamp"]))))
        self.long_term.remove(memory)
        logger.debug("长期记忆超容量，丢弃: %s", memory["content"][:30])

    # ================================================================
    # 主题簇
    # ================================================================

    def _update_clusters(self, memory):
        words = fold(memory["content"]).split()
        now = self.clock()

        best, best_score = None, 0
        for cluster in self.clusters:
            topic_words = fold(cluster["topic"]).split()
            score = sum(10 for w in words if w in topic_words)
            if best is None or score > best_score:
                best, best_score = cluster, score

        if best is not None and best_score > self.cluster_threshold:
            best["memories"].append(memory)
            best["strength"] += 5
            best["last_accessed_at"] = now
            if len(best["memories"]) > self.cluster_member_cap:
                weakest = min(best["memories"], key=lambda m: m["relevance"])
                best["memories"].remove(weakest)
            return best

        if len(words) < CLUSTER_TOPIC_WORDS:
            return None
        long_words = [w for w in words if len(w) > 3]
        if not long_words:
            return None

        picks = self.rng.permutation(len(long_words))[:CLUSTER_TOPIC_WORDS]
        cluster = {
            "id": f"cluster_{self._next_cluster_id:06d}",
            "topic": " ".join(long_words[i] for i in picks),
            "memories": [memory],
            "strength": CLUSTER_INITIAL_STRENGTH,
            "created_at": now,
            "last_accessed_at": now,
        }
        self._next_cluster_id += 1
        self.clusters.append(cluster)

        if len(self.clusters) > self.max_clusters:
            weakest = min(self.clusters, key=lambda c: c["strength"])
            self.clusters.remove(weakest)
        return cluster

    # ================================================================
    # 检索
    # ================================================================

    def find_similar(self, content, limit=5):
        """
        相似记忆检索。

        评分: 0.6 * 匹配分 + 0.2 * 新近度 + 0.2 * relevance
            匹配分: 长度 > 3 的词两两比较，互为子串 +5，完全相同再 +10；
                    connections 与内容重叠 +30；类别相同 +15

        返回:
            list[dict] - 得分 > 10 的记忆，按得分降序，最多 limit 条
        """
        now = self.clock()
        words = [w for w in fold(content).split() if len(w) > 3]
        category = categorize_memory(content)

        scored = []
        for memory in self.all_memories():
            memory_words = [w for w in fold(memory["content"]).split() if len(w) > 3]
            match = 0
            for cw in words:
                for mw in memory_words:
                    if cw in mw or mw in cw:
                        match += 5
                    if cw == mw:
                        match += 10
            if any(conn in content for conn in memory["connections"]):
                match += 30
            if memory["category"] == category:
                match += 15

            total = (match * 0.6 + self._recency_score(memory, now) * 0.2
                     + memory["relevance"] * 0.2)
            scored.append((total, memory))

        scored = [item for item in scored if item[0] > SIMILAR_THRESHOLD]
        scored.sort(key=lambda item: item[0], reverse=True)
        return [m for _, m in scored[:limit]]

    def get_contextual(self, query):
        """
        上下文检索，并强化命中的记忆。

        评分: 0.4 * 匹配分 + 0.1 * 新近度 + 0.2 * relevance
              + 0.1 * |情感分| + 0.2 * (5 * learning_count)
            匹配分: 词两两互为子串 +10、相同再 +15；类别相同 +20；
                    connections 与查询词重叠 +25；属于相关主题簇 +10

        返回:
            list[dict] - 得分 >= 20 的前 10 条记忆
        """
        now = self.clock()
        query_words = fold(query).split()
        if not query_words:
            return []

        related_ids = set()
        for cluster in self.clusters:
            topic_words = fold(cluster["topic"]).split()
            if any(tw in qw or qw in tw for qw in query_words for tw in topic_words):
                cluster["last_accessed_at"] = now
                cluster["strength"] += 1
                related_ids.update(id(m) for m in cluster["memories"])

        category = categorize_memory(query)
        scored = []
        for memory in self.all_memories():
            memory_words = fold(memory["content"]).split()
            match = 0
            for qw in query_words:
                for mw in memory_words:
                    if qw in mw or mw in qw:
                        match += 10
                    if qw == mw:
                        match += 15
            if memory["category"] == category:
                match += 20
            if any(qw in conn for conn in memory["connections"] for qw in query_words):
                match += 25
            if id(memory) in related_ids:
                match += CLUSTER_MEMBER_BONUS

            total = (match * 0.4
                     + self._recency_score(memory, now) * 0.1
                     + memory["relevance"] * 0.2
                     + abs(memory["emotional_score"]) * 0.1
                     + memory["learning_count"] * 5 * 0.2)
            scored.append((total, memory))

        selected = [m for s, m in sorted(scored, key=lambda item: item[0], reverse=True)
                    if s >= CONTEXTUAL_THRESHOLD][:CONTEXTUAL_LIMIT]

        for memory in selected:
            self.reinforce(memory["content"], CONTEXTUAL_REINFORCE)
            memory["learning_count"] += 1
        return selected

    # ================================================================
    # 强化 / 遗忘 / 巩固
    # ================================================================

    def reinforce(self, content, amount):
        """
        强化（或削弱）与 content 互为子串的记忆，随后执行一次遗忘。

        返回:
            bool - 是否有记忆被更新
        """
        now = self.clock()
        touched = []
        for memory in self.all_memories():
            if content in memory["content"] or memory["content"] in content:
                memory["relevance"] = max(0.0, min(100.0, memory["relevance"] + amount))
                if memory["content"] != content and content not in memory["connections"]:
                    memory["connections"].append(content)
                touched.append(memory)

        touched_ids = {id(m) for m in touched}
        for cluster in self.clusters:
            if any(id(m) in touched_ids for m in cluster["memories"]):
                cluster["strength"] += 2
                cluster["last_accessed_at"] = now

        self.apply_forgetting()
        return bool(touched)

    def apply_forgetting(self):
        """
        遗忘曲线:
            短期: 超过 1 天后每天减 2 * forgetting_rate
            长期: 超过 7 天后每天减 forgetting_rate / max(1, learning_count)
        relevance 下限 0，不删除记忆。
        """
        now = self.clock()
        for memory in self.short_term:
            days = self._age_days(memory, now)
            if days > 1:
                memory["relevance"] = max(0.0, memory["relevance"]
                                          - self.forgetting_rate * 2 * days)
        for memory in self.long_term:
            days = self._age_days(memory, now)
            if days > 7:
                rate = self.forgetting_rate / max(1, memory["learning_count"])
                memory["relevance"] = max(0.0, memory["relevance"] - rate * days)

    def consolidate(self):
        """
        短期 -> 长期巩固：超过 24 小时且满足迁移条件（relevance > 50 或 learning_count > 2）
        的短期记忆迁入长期，relevance + 10（上限 100）。

        返回:
            int - 迁移条数
        """
        now = self.clock()
        moving = [m for m in self.short_term
                  if self._age_days(m, now) > 1 and self._should_promote(m)]
        for memory in moving:
            self.short_term.remove(memory)
            memory["type"] = "long-term"
            memory["relevance"] = min(100.0, memory["relevance"] + CONSOLIDATION_BONUS)
            self.long_term.append(memory)

        while len(self.long_term) > self.max_long_term:
            self._consolidate_long_term()

        if moving:
            logger.info("巩固: %d 条短期记忆迁入长期", len(moving))
        return len(moving)

    # ================================================================
    # 提醒 / 提示词
    # ================================================================

    def daily_reminders(self):
        """
        从长期记忆挑选值得提醒的旧记忆（最多 5 条）：
            重要:   relevance > 70，7~30 天前，前 3
            熟练:   learning_count > 3，7 天前，前 2
            情感:   |emotional_score| > 50，7 天前，前 2

        返回:
            list[str] - 土耳其语提醒句
        """
        now = self.clock()
        week_ago = now - 7 * DAY_SECONDS
        month_ago = now - 30 * DAY_SECONDS

        important = sorted(
            (m for m in self.long_term
             if m["relevance"] > 70 and month_ago < m["timestamp"] < week_ago),
            key=lambda m: m["relevance"], reverse=True)[:3]
        well_learned = sorted(
            (m for m in self.long_term
             if m["learning_count"] > 3 and m["timestamp"] < week_ago),
            key=lambda m: m["learning_count"], reverse=True)[:2]
        emotional = sorted(
            (m for m in self.long_term
             if abs(m["emotional_score"]) > 50 and m["timestamp"] < week_ago),
            key=lambda m: abs(m["emotional_score"]), reverse=True)[:2]

        unique = {}
        for memory in important + well_learned + emotional:
            unique.setdefault(memory["content"], memory)
        picked = list(unique.values())
        picked = [picked[i] for i in self.rng.permutation(len(picked))][:5]

        reminders = []
        for memory in picked:
            content = memory["content"]
            snippet = content[:50] + ("..." if len(content) > 50 else "")
            text = (f"{format_turkish_date(memory['timestamp'])} tarihinde bahsettiğiniz "
                    f"\"{snippet}\" konusunu hatırlatmak istedim.")
            if memory["context"]:
                text += f" Konu hakkında \"{memory['context']}\" bağlamını konuşmuştuk."
            if abs(memory["emotional_score"]) > 50:
                emotion = "pozitif" if memory["emotional_score"] > 0 else "negatif"
                text += f" Bu konu sizin için {emotion} duygular içeriyordu."
            reminders.append(text)
        return reminders

    @staticmethod
    def build_prompt(query, relevant_memories, user_goal=None, history=None):
        """
        把相关记忆拼成土耳其语提示词（供外部语言模型使用）。

        参数:
            query: str - 当前问题
            relevant_memories: list[dict] - 相关记忆
            user_goal: str | None
            history: list[dict] | None - [{"content": str, "is_user": bool}]，取最后 3 条
        返回:
            str
        """
        prompt = f"Kullanıcının Sorusu: {query}\n\n"
        if user_goal:
            prompt += f"Kullanıcının Amacı: {user_goal}\n\n"

        if history:
            prompt += "Son Konuşma:\n"
            for msg in history[-3:]:
                who = "Kullanıcı" if msg.get("is_user") else "Asistan"
                prompt += f"{who}: {msg.get('content', '')}\n"
            prompt += "\n"

        if relevant_memories:
            prompt += "İlgili Bilgiler:\n"
            for i, memory in enumerate(relevant_memories[:5], 1):
                prompt += f"{i}. {memory['content']}\n"
                if memory.get("context"):
                    prompt += f"   Bağlam: {memory['context']}\n"
                if memory.get("category") and memory["category"] != "genel":
                    prompt += f"   Kategori: {memory['category']}\n"
            categories = []
            for memory in relevant_memories:
                cat = memory.get("category")
                if cat and cat not in categories:
                    categories.append(cat)
            if categories:
                prompt += "\nİlgili Kategoriler: " + ", ".join(categories) + "\n"
            prompt += ("\nYukarıdaki bilgileri ve bağlamı dikkate alarak Türkçe dilinde "
                       "yanıt ver. Bilgiyi doğal bir şekilde cevabına dahil et:\n")
        else:
            prompt += ("Yanıtını Türkçe olarak ver ve kullanıcıyla saygılı, dostça ve "
                       "yardımcı bir şekilde iletişim kur:\n")
        return prompt

    # ================================================================
    # 导入导出 / 统计
    # ================================================================

    def clear(self):
        self.short_term = []
        self.long_term = []
        self.clusters = []

    def export(self):
        """导出为 JSON 兼容字典；簇成员以内容字符串引用。"""
        return {
            "short_term": [dict(m) for m in self.short_term],
            "long_term": [dict(m) for m in self.long_term],
            "clusters": [dict(c, memories=[m["content"] for m in c["memories"]])
                         for c in self.clusters],
            "next_cluster_id": self._next_cluster_id,
        }

    def import_(self, data):
        """从 export() 的结果恢复；簇成员按内容重新关联到记忆对象。"""
        self.short_term = [dict(m) for m in data.get("short_term", [])]
        self.long_term = [dict(m) for m in data.get("long_term", [])]
        by_content = {m["content"]: m for m in self.all_memories()}

        self.clusters = []
        for raw in data.get("clusters", []):
            members = [by_content[c] for c in raw.get("memories", []) if c in by_content]
            self.clusters.append(dict(raw, memories=members))
        self._next_cluster_id = data.get("next_cluster_id", len(self.clusters) + 1)

    def get_stats(self):
        return {
            "short_term": len(self.short_term),
            "long_term": len(self.long_term),
            "clusters": len(self.clusters),
            "forgetting_rate": self.forgetting_rate,
        }
