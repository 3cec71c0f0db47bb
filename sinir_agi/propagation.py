# -*- coding: utf-8 -*-
"""
激活扩散引擎
- 种子阶段：与输入词模糊相似度 >= 0.7 的输入侧节点激活为 1.0
- 扩散阶段：FIFO 队列按层扩散，最多 max_depth 跳
    1) 沿图连接：new = cur * weight * (1 - decay)
    2) 沿关系：  new = cur * strength/100 * (1 - decay)
       输入侧源词 -> 输出侧目标词；bidirectional 关系还允许输出侧目标词 -> 输入侧源词（反向）
- 只有严格超过阈值且严格超过本轮已记录激活值时才更新并入队（防环、保证终止）
- 产出 primary_concepts / response_score / confidence，供回答合成使用
- 纯函数式保证：任何异常都不会抛出，退化为空结果
"""

import logging
import time
from collections import deque

from .lexicon import fold, tokenize, word_similarity

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 3
CONNECTION_THRESHOLD = 0.25
ACTIVATION_DECAY_RATE = 0.01
SEED_SIMILARITY = 0.7
PRIMARY_CONCEPT_MIN = 0.5
PRIMARY_CONCEPT_LIMIT = 5
DEFAULT_CONFIDENCE = 0.3


def _empty_result(started):
    return {
        "activation_path": [],
        "activated_nodes": [],
        "activated_relations": [],
        "primary_concepts": [],
        "response_score": 1,
        "confidence": DEFAULT_CONFIDENCE,
        "processing_time_ms": round((time.perf_counter() - started) * 1000, 3),
    }


def _relation_key(rel):
    return rel.get("id") or (fold(rel["source_word"]), fold(rel["target_word"]))


def _node_summary(node):
    return {
        "id": node["id"],
        "word": node["word"],
        "side": node["side"],
        "layer": node["layer"],
        "activation": node["activation"],
        "importance": node["importance"],
    }


def propagate_activation(input_graph, output_graph, relations, input_text,
                         max_depth=DEFAULT_MAX_DEPTH,
                         threshold=CONNECTION_THRESHOLD,
                         decay_rate=ACTIVATION_DECAY_RATE,
                         seed_similarity=SEED_SIMILARITY):
    """
    从输入文本出发在双侧词图上扩散激活。

    参数:
        input_graph: WordGraph - 输入侧词图
        output_graph: WordGraph - 输出侧词图
        relations: list[dict] - 参与扩散的关系
        input_text: str - 用户原话
        max_depth: int - 最大跳数
        threshold: float - 激活阈值（严格大于才接受）
        decay_rate: float - 每跳衰减率
        seed_similarity: float - 种子匹配的最小相似度
    返回:
        dict - {
            "activation_path": [{"side", "layer", "word", "value", "depth"}],
            "activated_nodes": [{"id", "word", "side", "layer", "activation", "importance"}],
            "activated_relations": [关系副本 + "is_reversed"],
            "primary_concepts": [str],
            "response_score": int (1~100),
            "confidence": float (0~1),
            "processing_time_ms": float,
        }
    """
    started = time.perf_counter()
    try:
        return _propagate(input_graph, output_graph, relations, input_text,
                          max_depth, threshold, decay_rate, seed_similarity,
                          started)
    except Exception:
        logger.exception("激活扩散失败，返回空结果")
        return _empty_result(started)


def _propagate(input_graph, output_graph, relations, input_text, max_depth,
               threshold, decay_rate, seed_similarity, started):
    tokens = tokenize(input_text)
    if not tokens:
        return _empty_result(started)

    graphs = {input_graph.side: input_graph, output_graph.side: output_graph}

    by_source = {}
    by_target = {}
    for rel in relations or []:
        by_source.setdefault(fold(rel["source_word"]), []).append(rel)
        if rel.get("bidirectional"):
            by_target.setdefault(fold(rel["target_word"]), []).append(rel)

    levels = {}          # node_id -> 本轮记录的激活值
    order = []           # 首次激活顺序
    path = {}            # node_id -> activation_path 条目
    activated_relations = {}
    queue = deque()

    def activate(graph, node, value, depth):
        node_id = node["id"]
        graph.set_activation(node_id, value)
        levels[node_id] = value
        if node_id in path:
            path[node_id]["value"] = value
        else:
            order.append((graph, node_id))
            path[node_id] = {"side": graph.side, "layer": node["layer"],
                             "word": node["word"], "value": value, "depth": depth}
        queue.append((graph, node_id, value, depth))

    # 种子阶段
    for node in input_graph.nodes():
        word = fold(node["word"])
        if any(word_similarity(word, tok) >= seed_similarity for tok in tokens):
            activate(input_graph, node, 1.0, 0)

    keep = 1.0 - decay_rate

    def offer(graph, node, value, depth):
        if value > threshold and value > levels.get(node["id"], 0.0):
            activate(graph, node, value, depth)
            return True
        return False

    # 扩散阶段
    while queue:
        graph, node_id, value, depth = queue.popleft()
        if depth >= max_depth:
            continue
        node = graph.get_node(node_id)
        if node is None:
            continue

        # a. 图连接
        for nb_id, weight in graph.connection_strengths(node_id).items():
            offer(graph, graph.get_node(nb_id), value * weight * keep, depth + 1)

        # b. 关系
        word = fold(node["word"])
        if graph.side == "input":
            for rel in by_source.get(word, ()):
                target = graphs["output"].get(rel["target_word"])
                if target is None:
                    continue
                if offer(graphs["output"], target,
                         value * (rel["strength"] / 100.0) * keep, depth + 1):
                    activated_relations.setdefault(
                        (_relation_key(rel), False), dict(rel, is_reversed=False))
        else:
            for rel in by_target.get(word, ()):
                source = graphs["input"].get(rel["source_word"])
                if source is None:
                    continue
                if offer(graphs["input"], source,
                         value * (rel["strength"] / 100.0) * keep, depth + 1):
                    activated_relations.setdefault(
                        (_relation_key(rel), True), dict(rel, is_reversed=True))

    nodes = [_node_summary(g.get_node(nid)) for g, nid in order]
    rels = list(activated_relations.values())

    concepts = [n for n in nodes if n["activation"] > PRIMARY_CONCEPT_MIN]
    concepts.sort(key=lambda n: (n["activation"], n["importance"]), reverse=True)
    primary_concepts = [n["word"] for n in concepts[:PRIMARY_CONCEPT_LIMIT]]

    total_activation = sum(n["activation"] for n in nodes)
    response_score = int(round(5 * len(nodes) + 10 * len(rels) + 20 * total_activation))
    response_score = max(1, min(100, response_score))

    if rels:
        confidence = sum(r["confidence"] for r in rels) / len(rels)
    else:
        confidence = DEFAULT_CONFIDENCE
    confidence = max(0.0, min(1.0, confidence))

    logger.debug("激活扩散: %d 个节点, %d 条关系, 主要概念 %s",
                 len(nodes), len(rels), primary_concepts)

    return {
        "activation_path": [path[nid] for _, nid in order],
        "activated_nodes": nodes,
        "activated_relations": rels,
        "primary_concepts": primary_concepts,
        "response_score": response_score,
        "confidence": confidence,
        "processing_time_ms": round((time.perf_counter() - started) * 1000, 3),
    }
