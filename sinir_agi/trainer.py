# -*- coding: utf-8 -*-
"""
批量训练器
- 一次处理多条 {input, output} 训练对，最终只提交一次状态更新
- 在词图 / 关系账本 / 语料的工作副本上累积修改，全部成功后才交给调用方替换
- 每条训练对: 清洗 -> 分词 -> 两侧逐词加入词图（前一个成功加入的词作为父词）
  -> 输入词 × 输出词 建立或强化关系 -> 按采样率建立或强化角色互换的双向关系
  -> 追加到语料
- 空训练对（清洗后输入或输出为空）静默跳过，不计入统计
- 支持从 CSV 文件批量训练（pandas 按需加载）
"""

import logging
import re
import time

import numpy as np

from .lexicon import strip_boilerplate

logger = logging.getLogger(__name__)

WORDS_PER_LAYER = 6
MIN_NODE_WORD_LEN = 2
MIN_RELATION_WORD_LEN = 3
DEFAULT_BIDIRECTIONAL_RATE = 0.3
DEFAULT_REINFORCE_AMOUNT = 0.2
DEFAULT_BIDIRECTIONAL_REINFORCE = 0.1

RE_DIGITS = re.compile(r"^[0-9]+$")


def split_words(text):
    """按空白切分并保留长度 >= 2 的词（原样大小写）。"""
    return [w for w in text.split() if len(w) >= MIN_NODE_WORD_LEN]


def is_relation_word(word):
    return len(word) >= MIN_RELATION_WORD_LEN and not RE_DIGITS.match(word)


class BatchTrainer:
    """
    批量训练器。

    参数:
        input_graph: WordGraph - 输入侧词图
        output_graph: WordGraph - 输出侧词图
        ledger: RelationLedger - 关系账本
        corpus: list[dict] - 训练语料
        bidirectional_rate: float - 每个词对建立双向关系的采样概率
        reinforce_amount: float - 重复词对的关系强化量
        bidirectional_reinforce: float - 重复双向关系的强化量
        rng: np.random.Generator | None - 采样随机源
        clock: callable - 时间源
    """

    def __init__(self, input_graph, output_graph, ledger, corpus,
                 bidirectional_rate=DEFAULT_BIDIRECTIONAL_RATE,
                 reinforce_amount=DEFAULT_REINFORCE_AMOUNT,
                 bidirectional_reinforce=DEFAULT_BIDIRECTIONAL_REINFORCE,
                 rng=None, clock=time.time):
        if not 0.0 <= bidirectional_rate <= 1.0:
            raise ValueError(f"bidirectional_rate 必须在 [0, 1] 内: {bidirectional_rate}")
        self.input_graph = input_graph
        self.output_graph = output_graph
        self.ledger = ledger
        self.corpus = corpus
        self.bidirectional_rate = bidirectional_rate
        self.reinforce_amount = reinforce_amount
        self.bidirectional_reinforce = bidirectional_reinforce
        self.rng = rng if rng is not None else np.random.default_rng()
        self.clock = clock

    def _add_side(self, graph, words):
        previous = None
        skipped = 0
        for i, word in enumerate(words):
            layer = min(graph.layers - 1, i // WORDS_PER_LAYER)
            node = graph.add_word(word, layer, previous)
            if node is not None:
                previous = word
            else:
                skipped += 1
        return skipped

    def _relate(self, ledger, input_words, output_words):
        for order, user_word in enumerate(input_words):
            if not is_relation_word(user_word):
                continue
            for system_word in output_words:
                if not is_relation_word(system_word):
                    continue

                existing = ledger.get(user_word, system_word)
                if existing is not None:
                    ledger.reinforce(existing, self.reinforce_amount)
                else:
                    ledger.create(user_word, system_word, order=order)

                if self.rng.random() < self.bidirectional_rate:
                    bi = ledger.get_bidirectional(system_word, user_word)
                    if bi is not None:
                        ledger.reinforce(bi, self.bidirectional_reinforce)
                    else:
                        ledger.create_bidirectional(system_word, user_word, order=order)

    def train(self, items, next_pair_id=1, progress_callback=None):
        """
        在工作副本上处理全部训练对。

        参数:
            items: list[dict] - [{"input": str, "output": str, ...}]
            next_pair_id: int - 新训练对编号起点
            progress_callback: callable | None - 进度回调 fn(current, total)
        返回:
            dict - {
                "input_graph", "output_graph", "ledger", "corpus",  # 工作副本，由调用方替换
                "next_pair_id": int,
                "stats": {"node_count", "relation_count", "training_count",
                          "last_training_at", "items_processed", "items_skipped",
                          "words_skipped", "time_seconds"},
            }
        """
        t0 = time.time()
        input_graph = self.input_graph.copy()
        output_graph = self.output_graph.copy()
        ledger = self.ledger.copy()
        corpus = [dict(p) for p in self.corpus]

        processed = 0
        skipped = 0
        words_skipped = 0
        total = len(items or [])

        for idx, item in enumerate(items or []):
            raw_input = item.get("input") if isinstance(item, dict) else None
            raw_output = item.get("output") if isinstance(item, dict) else None
            clean_input = raw_input.strip() if isinstance(raw_input, str) else ""
            clean_output = strip_boilerplate(raw_output.strip()) if isinstance(raw_output, str) else ""

            if not clean_input or not clean_output:
                skipped += 1
                logger.debug("跳过空训练对: %r => %r", raw_input, raw_output)
                continue

            input_words = split_words(clean_input)
            output_words = split_words(clean_output)

            words_skipped += self._add_side(input_graph, input_words)
            words_skipped += self._add_side(output_graph, output_words)
            if input_words and output_words:
                self._relate(ledger, input_words, output_words)

            corpus.append({
                "id": f"pair_{next_pair_id:06d}",
                "input": clean_input,
                "output": clean_output,
                "created_at": self.clock(),
                "usage_count": 0,
                "category": item.get("category", "general"),
                "tags": list(item.get("tags", [])),
                "score": item.get("score"),
            })
            next_pair_id += 1
            processed += 1

            if progress_callback and (idx + 1) % 100 == 0:
                progress_callback(idx + 1, total)

        if words_skipped:
            logger.warning("批量训练: %d 个词因网格已满未能加入", words_skipped)

        last_training_at = self.clock() if processed else None
        stats = {
            "node_count": len(input_graph) + len(output_graph),
            "relation_count": len(ledger),
            "training_count": len(corpus),
            "last_training_at": last_training_at,
            "items_processed": processed,
            "items_skipped": skipped,
            "words_skipped": words_skipped,
            "time_seconds": round(time.time() - t0, 2),
        }
        logger.info("批量训练完成: 处理 %d 条, 跳过 %d 条, 节点 %d, 关系 %d",
                    processed, skipped, stats["node_count"], stats["relation_count"])

        return {
            "input_graph": input_graph,
            "output_graph": output_graph,
            "ledger": ledger,
            "corpus": corpus,
            "next_pair_id": next_pair_id,
            "stats": stats,
        }


def read_training_csv(csv_path, input_column="input", output_column="output"):
    """
    读取 CSV 训练文件为 [{"input", "output"}] 列表（非字符串单元格视为空）。

    参数:
        csv_path: str - CSV 文件路径
        input_column / output_column: str - 列名
    返回:
        list[dict]
    """
    import pandas as pd

    df = pd.read_csv(csv_path)
    for column in (input_column, output_column):
        if column not in df.columns:
            raise ValueError(f"CSV 中未找到列 '{column}', 可用列: {list(df.columns)}")

    items = []
    for _, row in df.iterrows():
        text_in = row.get(input_column)
        text_out = row.get(output_column)
        items.append({
            "input": text_in if isinstance(text_in, str) else "",
            "output": text_out if isinstance(text_out, str) else "",
        })
    return items
