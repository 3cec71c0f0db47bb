# -*- coding: utf-8 -*-
"""
NeuralChatAgent - 自学习对话代理统一 API

这是整个系统的唯一对外接口。封装了：
- 双侧词图 (WordGraph: input / output)
- 关系账本 (RelationLedger: 主账本 + 双向账本)
- 激活扩散 (propagate_activation)
- 回答合成 (respond: 反向查找 / 语料匹配 / 模板合成)
- 情景记忆 (EpisodicMemory)
- 批量训练 (BatchTrainer, 含 CSV)

调用方只能通过下列方法改变状态，不直接修改内部字段：
    train_one / train_batch / train_from_csv / correct   训练
    query                                                查询（带有限的回写强化）
    refresh / evict_layer                                维护
    snapshot / restore / save / load                     持久化

用法:
    from sinir_agi import NeuralChatAgent

    agent = NeuralChatAgent(seed=42)

    # 1. 训练
    agent.train_one("Merhaba", "Merhaba! Nasılsınız?")
    agent.train_batch([{"input": "Türkiye'nin başkenti neresidir", "output": "Ankara"}])
    agent.train_from_csv("egitim.csv")

    # 2. 查询
    result = agent.query("Ankara nedir?")
    print(result["response"], result["confidence"])

    # 3. 维护（遗忘扫描 + 记忆巩固）
    agent.refresh()

    # 4. 持久化
    agent.save("./agent_data")
    agent.load("./agent_data")
"""

import copy
import json
import logging
import os
import time

import numpy as np

from .episodic import (
    DEFAULT_FORGETTING_RATE,
    DEFAULT_MAX_LONG_TERM,
    DEFAULT_MAX_SHORT_TERM,
    EpisodicMemory,
)
from .propagation import (
    ACTIVATION_DECAY_RATE,
    CONNECTION_THRESHOLD,
    DEFAULT_MAX_DEPTH,
    propagate_activation,
)
from .relations import DEFAULT_FORGET_RATE, RelationLedger
from .responder import DEFAULT_EMOJI_RATE, find_reverse_answer, respond
from .trainer import (
    DEFAULT_BIDIRECTIONAL_RATE,
    DEFAULT_REINFORCE_AMOUNT,
    BatchTrainer,
    read_training_csv,
    split_words,
)
from .word_graph import (
    DEFAULT_COLS,
    DEFAULT_LAYERS,
    DEFAULT_ROWS,
    DEFAULT_SEARCH_RADIUS,
    SIDES,
    WordGraph,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
REVERSE_REINFORCE_AMOUNT = 0.8
DEFAULT_CORRECTION_FEEDBACK = 10


class NeuralChatAgent:
    """
    自学习对话代理 - 统一接口。

    参数:
        data_dir: str | None - 数据目录；指定时构造阶段尝试从中加载（失败则保持空状态）
        seed: int | None - 随机种子（importance、双向采样、表情、簇主题词共用一个随机源）
        layers / rows / cols: int - 每侧词图的层数与网格尺寸
        search_radius: int - 螺旋搜索半径（决定每层容量）
        max_depth: int - 激活扩散最大跳数
        connection_threshold: float - 激活阈值
        activation_decay_rate: float - 每跳衰减率（refresh 时也用于衰减节点激活）
        forget_rate: float - 关系遗忘扫描的每日减弱量
        bidirectional_rate: float - 双向关系采样率
        reinforce_amount: float - 训练中重复词对的强化量
        emoji_rate: float - 模板回答附带表情的概率
        memory_forgetting_rate: float - 情景记忆遗忘速率
        max_short_term / max_long_term: int - 情景记忆容量
        remember_turns: bool - query 时是否把用户原话写入情景记忆
        search: callable | None - 外部检索协作者 fn(query) -> list[dict]
        clock: callable - 时间源，默认 time.time
    """

    def __init__(self, data_dir=None, seed=None, layers=DEFAULT_LAYERS,
                 rows=DEFAULT_ROWS, cols=DEFAULT_COLS,
                 search_radius=DEFAULT_SEARCH_RADIUS,
                 max_depth=DEFAULT_MAX_DEPTH,
                 connection_threshold=CONNECTION_THRESHOLD,
                 activation_decay_rate=ACTIVATION_DECAY_RATE,
                 forget_rate=DEFAULT_FORGET_RATE,
                 bidirectional_rate=DEFAULT_BIDIRECTIONAL_RATE,
                 reinforce_amount=DEFAULT_REINFORCE_AMOUNT,
                 emoji_rate=DEFAULT_EMOJI_RATE,
                 memory_forgetting_rate=DEFAULT_FORGETTING_RATE,
                 max_short_term=DEFAULT_MAX_SHORT_TERM,
                 max_long_term=DEFAULT_MAX_LONG_TERM,
                 remember_turns=True, search=None, clock=time.time):
        # 配置
        self._data_dir = data_dir
        self._config = {
            "seed": seed,
            "layers": layers,
            "rows": rows,
            "cols": cols,
            "search_radius": search_radius,
            "max_depth": max_depth,
            "connection_threshold": connection_threshold,
            "activation_decay_rate": activation_decay_rate,
            "forget_rate": forget_rate,
            "bidirectional_rate": bidirectional_rate,
            "reinforce_amount": reinforce_amount,
            "emoji_rate": emoji_rate,
            "memory_forgetting_rate": memory_forgetting_rate,
            "max_short_term": max_short_term,
            "max_long_term": max_long_term,
            "remember_turns": remember_turns,
        }
        self._search = search
        self._clock = clock
        self._rng = np.random.default_rng(seed)

        self._reset_state()

        if data_dir:
            self.load(data_dir)

    def _reset_state(self):
        cfg = self._config
        self._input_graph = self._new_graph("input")
        self._output_graph = self._new_graph("output")
        self._ledger = RelationLedger(clock=self._clock)
        self._corpus = []
        self._next_pair_id = 1
        self._last_training_at = None
        self._memory = EpisodicMemory(
            max_short_term=cfg["max_short_term"],
            max_long_term=cfg["max_long_term"],
            forgetting_rate=cfg["memory_forgetting_rate"],
            rng=self._rng,
            clock=self._clock,
        )

    def _new_graph(self, side):
        cfg = self._config
        return WordGraph(side, layers=cfg["layers"], rows=cfg["rows"],
                         cols=cfg["cols"], search_radius=cfg["search_radius"],
                         rng=self._rng, clock=self._clock)

    def _graph(self, side):
        if side not in SIDES:
            raise ValueError(f"未知的 side: {side!r}，可选: {SIDES}")
        return self._input_graph if side == "input" else self._output_graph

    # ================================================================
    # 只读视图
    # ================================================================

    @property
    def corpus(self):
        """训练语料（副本）。"""
        return [dict(p) for p in self._corpus]

    @property
    def memory(self):
        return self._memory

    def get_node(self, side, word):
        node = self._graph(side).get(word)
        return copy.deepcopy(node) if node is not None else None

    def get_relation(self, source_word, target_word, bidirectional=False):
        if bidirectional:
            rel = self._ledger.get_bidirectional(source_word, target_word)
        else:
            rel = self._ledger.get(source_word, target_word)
        return dict(rel) if rel is not None else None

    def relations(self):
        return [dict(r) for r in self._ledger.relations()]

    def bidirectional_relations(self):
        return [dict(r) for r in self._ledger.bidirectional_relations()]

    # ================================================================
    # 训练
    # ================================================================

    def train_one(self, user_input, system_output):
        """训练单条 (输入, 输出)；等价于只含一条的批量训练。"""
        return self.train_batch([{"input": user_input, "output": system_output}])

    def train_batch(self, items, progress_callback=None):
        """
        批量训练，全部处理完后一次性替换状态。

        参数:
            items: list[dict] - [{"input": str, "output": str}]
            progress_callback: callable | None - 进度回调 fn(current, total)
        返回:
            dict - {"node_count", "relation_count", "training_count", "last_training_at",
                    "items_processed", "items_skipped", "words_skipped", "time_seconds"}
        """
        cfg = self._config
        trainer = BatchTrainer(
            self._input_graph, self._output_graph, self._ledger, self._corpus,
            bidirectional_rate=cfg["bidirectional_rate"],
            reinforce_amount=cfg["reinforce_amount"],
            rng=self._rng,
            clock=self._clock,
        )
        result = trainer.train(items or [], next_pair_id=self._next_pair_id,
                               progress_callback=progress_callback)

        # 单次提交
        self._input_graph = result["input_graph"]
        self._output_graph = result["output_graph"]
        self._ledger = result["ledger"]
        self._corpus = result["corpus"]
        self._next_pair_id = result["next_pair_id"]

        stats = result["stats"]
        if stats["last_training_at"] is not None:
            self._last_training_at = stats["last_training_at"]
        else:
            stats["last_training_at"] = self._last_training_at
        return stats

    def train_from_csv(self, csv_path, input_column="input", output_column="output",
                       progress_callback=None):
        """从 CSV 文件批量训练（列名可配置）。"""
        items = read_training_csv(csv_path, input_column, output_column)
        return self.train_batch(items, progress_callback=progress_callback)

    def correct(self, question, answer, feedback=DEFAULT_CORRECTION_FEEDBACK):
        """
        用户纠正：训练正确的 (问题, 答案)，并对二者词对之间的关系施加正反馈。

        返回:
            dict - 训练统计 + "feedback_applied": int
        """
        stats = self.train_one(question, answer)
        applied = 0
        for user_word in split_words(question.strip()):
            for system_word in split_words(answer.strip()):
                if self._ledger.apply_feedback(user_word, system_word, feedback) is not None:
                    applied += 1
        stats["feedback_applied"] = applied
        return stats

    # ================================================================
    # 查询
    # ================================================================

    def propagate(self, text):
        """只做激活扩散（调试 / 可视化用）。"""
        cfg = self._config
        return propagate_activation(
            self._input_graph, self._output_graph, self._ledger.relations(), text,
            max_depth=cfg["max_depth"],
            threshold=cfg["connection_threshold"],
            decay_rate=cfg["activation_decay_rate"],
        )

    def query(self, text):
        """
        回答一句用户输入。

        流程: 反向查找（命中则强化对应训练对的关系 0.8）
              -> 激活扩散 -> 回答合成（语料命中则强化该训练对的关系 0.2）

        返回:
            dict - {"response": str, "confidence": float, "used_training": dict | None,
                    "source": str, "primary_concepts": list[str]}
        """
        text = text if isinstance(text, str) else ""

        reverse = find_reverse_answer(text, self._corpus) if text.strip() else None
        if reverse is not None:
            self._reinforce_pair(reverse["pair"], REVERSE_REINFORCE_AMOUNT)
            result = {"response": reverse["response"], "confidence": reverse["confidence"],
                      "used_training": None, "source": "reverse", "primary_concepts": []}
        else:
            activation = self.propagate(text)
            answer = respond(activation, self._corpus, text, rng=self._rng,
                             emoji_rate=self._config["emoji_rate"], search=self._search,
                             reverse_lookup=False)
            if answer["used_training"] is not None:
                self._reinforce_pair(answer["used_training"], self._config["reinforce_amount"])
            result = dict(answer, primary_concepts=activation["primary_concepts"])

        if self._config["remember_turns"] and text.strip():
            self._memory.add_memory(text.strip(), related=[result["response"]])

        logger.debug("query %r -> [%s] %.2f", text, result["source"], result["confidence"])
        return result

    def _reinforce_pair(self, pair, amount):
        return self._ledger.reinforce_between(split_words(pair["input"]),
                                              split_words(pair["output"]), amount)

    # ================================================================
    # 情景记忆
    # ================================================================

    def remember(self, content, type="short-term", related=None, context=None):
        return self._memory.add_memory(content, type=type, related=related, context=context)

    def recall(self, query):
        """上下文检索（会强化命中的记忆）。"""
        return self._memory.get_contextual(query)

    def daily_reminders(self):
        return self._memory.daily_reminders()

    # ================================================================
    # 维护
    # ================================================================

    def refresh(self):
        """
        维护扫描：关系遗忘、节点激活衰减、情景记忆遗忘与巩固。

        返回:
            dict - {"relations_weakened": int, "memories_consolidated": int}
        """
        cfg = self._config
        weakened = self._ledger.weaken(cfg["forget_rate"])
        self._input_graph.decay_activations(cfg["activation_decay_rate"])
        self._output_graph.decay_activations(cfg["activation_decay_rate"])
        self._memory.apply_forgetting()
        consolidated = self._memory.consolidate()
        return {"relations_weakened": weakened, "memories_consolidated": consolidated}

    def expand_layers(self, extra_layers=1):
        """两侧词图同时扩层。"""
        self._input_graph.expand(extra_layers)
        self._output_graph.expand(extra_layers)
        return self._input_graph.layers

    def evict_layer(self, side, layer, count=1):
        return self._graph(side).evict_layer(layer, count)

    # ================================================================
    # 快照 / 持久化
    # ================================================================

    def snapshot(self):
        """导出完整状态（JSON 兼容，带 schema_version）。"""
        return copy.deepcopy({
            "schema_version": SCHEMA_VERSION,
            "config": self._config,
            "input_graph": self._input_graph.to_dict(),
            "output_graph": self._output_graph.to_dict(),
            "ledger": self._ledger.to_dict(),
            "corpus": self._corpus,
            "next_pair_id": self._next_pair_id,
            "last_training_at": self._last_training_at,
            "memory": self._memory.export(),
        })

    def restore(self, data):
        """
        从 snapshot() 的结果恢复。全部解析成功后才替换当前状态。

        异常:
            ValueError - schema_version 不匹配或数据格式错误
        """
        if not isinstance(data, dict):
            raise ValueError("快照必须是 dict")
        version = data.get("schema_version")
        if version != SCHEMA_VERSION:
            raise ValueError(f"不支持的快照版本: {version!r}（当前 {SCHEMA_VERSION}）")

        data = copy.deepcopy(data)
        try:
            config = dict(self._config, **data.get("config", {}))
            input_graph = WordGraph.from_dict(data["input_graph"], rng=self._rng, clock=self._clock)
            output_graph = WordGraph.from_dict(data["output_graph"], rng=self._rng, clock=self._clock)
            ledger = RelationLedger.from_dict(data["ledger"], clock=self._clock)
            corpus = list(data.get("corpus", []))
            memory = EpisodicMemory(
                max_short_term=config["max_short_term"],
                max_long_term=config["max_long_term"],
                forgetting_rate=config["memory_forgetting_rate"],
                rng=self._rng,
                clock=self._clock,
            )
            memory.import_(data.get("memory", {}))
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"快照数据格式错误: {e}") from e

        if input_graph.side != "input" or output_graph.side != "output":
            raise ValueError("快照中的词图 side 不匹配")

        self._config = config
        self._input_graph = input_graph
        self._output_graph = output_graph
        self._ledger = ledger
        self._corpus = corpus
        self._next_pair_id = data.get("next_pair_id", len(corpus) + 1)
        self._last_training_at = data.get("last_training_at")
        self._memory = memory

    def save(self, directory=None):
        """
        将状态保存到目录。

        保存内容:
            - config.json: 配置 + schema_version + 保存时间
            - state.json: 完整快照（词图、关系、语料、情景记忆）

        参数:
            directory: str | None - 保存目录，默认 data_dir
        """
        directory = directory or self._data_dir
        if not directory:
            raise ValueError("未指定保存目录")
        os.makedirs(directory, exist_ok=True)

        meta = {
            "schema_version": SCHEMA_VERSION,
            "config": self._config,
            "save_timestamp": time.time(),
        }
        with open(os.path.join(directory, "config.json"), "w", encoding="utf-8") as f:
            json.dump(meta, f, ensure_ascii=False, indent=2)

        with open(os.path.join(directory, "state.json"), "w", encoding="utf-8") as f:
            json.dump(self.snapshot(), f, ensure_ascii=False, indent=2)

    def load(self, directory=None):
        """
        从目录加载状态。文件缺失或损坏时保持当前状态不变。

        返回:
            bool - 是否加载成功
        """
        directory = directory or self._data_dir
        if not directory:
            return False
        state_path = os.path.join(directory, "state.json")
        if not os.path.exists(state_path):
            return False

        try:
            with open(state_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            self.restore(data)
        except (OSError, ValueError) as e:
            logger.warning("加载失败 (%s)，保持当前状态", e)
            return False
        return True

    # ================================================================
    # 统计信息
    # ================================================================

    def get_stats(self):
        """
        返回系统综合统计信息。

        返回:
            dict - node_count / relation_count / training_count / last_training_at
                   + 各组件详情
        """
        return {
            "node_count": len(self._input_graph) + len(self._output_graph),
            "relation_count": len(self._ledger),
            "training_count": len(self._corpus),
            "last_training_at": self._last_training_at,
            "config": dict(self._config),
            "input_graph": self._input_graph.get_stats(),
            "output_graph": self._output_graph.get_stats(),
            "relations": self._ledger.get_stats(),
            "memory": self._memory.get_stats(),
        }

    def __repr__(self):
        return (
            f"NeuralChatAgent("
            f"nodes={len(self._input_graph) + len(self._output_graph)}, "
            f"relations={len(self._ledger)}, "
            f"pairs={len(self._corpus)}, "
            f"memories={len(self._memory)})"
        )
