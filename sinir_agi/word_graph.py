# -*- coding: utf-8 -*-
"""
词图存储（单侧）
- 每一侧（用户输入 input / 系统输出 output）各持有一个 WordGraph
- 节点按小写词去重：重复添加只强化已有节点，不会产生重复节点
- 节点之间的连接保存在 networkx.Graph 中，边权 weight 即连接强度
- 分层网格只用于容量控制：新节点在指定层内从网格中心螺旋搜索空位
- 网格满时 add_word 返回 None（容量信号），可 expand() 扩层或 evict_layer() 淘汰
"""

import copy
import logging
import time

import networkx as nx
import numpy as np

from .lexicon import calculate_sentiment, categorize_word, fold, semantic_vector

logger = logging.getLogger(__name__)

SIDES = ("input", "output")

DEFAULT_LAYERS = 20
DEFAULT_ROWS = 50
DEFAULT_COLS = 50
DEFAULT_SEARCH_RADIUS = 5

NEW_NODE_ACTIVATION = 0.8
REPEAT_ACTIVATION_BOOST = 0.2
INITIAL_CONNECTION_WEIGHT = 0.5
CONNECTION_WEIGHT_STEP = 0.1
ACTIVATION_HISTORY_LIMIT = 20
IMPORTANCE_RANGE = (10, 40)


def spiral_cells(rows, cols, radius):
    """
    从网格中心向外的螺旋扫描顺序（上边 -> 右边 -> 下边 -> 左边）。

    参数:
        rows, cols: int - 网格尺寸
        radius: int - 最大搜索半径
    返回:
        list[tuple[int, int]] - 落在网格内的 (row, col)，按扫描顺序
    """
    cy, cx = rows // 2, cols // 2
    order = []
    for d in range(radius + 1):
        ring = []
        ring += [(cy - d, cx + i) for i in range(-d, d + 1)]
        ring += [(cy + i, cx + d) for i in range(-d + 1, d + 1)]
        ring += [(cy + d, cx + i) for i in range(d - 1, -d - 1, -1)]
        ring += [(cy + i, cx - d) for i in range(d - 1, -d, -1)]
        for row, col in ring:
            if 0 <= row < rows and 0 <= col < cols and (row, col) not in order:
                order.append((row, col))
    return order


class WordGraph:
    """
    单侧词图。

    参数:
        side: str - "input" 或 "output"
        layers: int - 层数
        rows, cols: int - 每层网格尺寸
        search_radius: int - 螺旋搜索半径（决定每层可放置的格子数）
        rng: np.random.Generator | None - 随机源（importance 取值）
        clock: callable - 时间源，默认 time.time
    """

    def __init__(self, side, layers=DEFAULT_LAYERS, rows=DEFAULT_ROWS,
                 cols=DEFAULT_COLS, search_radius=DEFAULT_SEARCH_RADIUS,
                 rng=None, clock=time.time):
        if side not in SIDES:
            raise ValueError(f"未知的 side: {side!r}，可选: {SIDES}")
        if layers < 1 or rows < 1 or cols < 1:
            raise ValueError("layers / rows / cols 必须为正整数")

        self.side = side
        self.layers = layers
        self.rows = rows
        self.cols = cols
        self.search_radius = search_radius
        self.rng = rng if rng is not None else np.random.default_rng()
        self.clock = clock

        self.graph = nx.Graph()
        self.word_index = {}      # lower(word) -> node_id
        self._cells = {}          # node_id -> (layer, row, col)
        self._occupied = {}       # layer -> {(row, col): node_id}
        self._next_id = 1
        self._spiral = spiral_cells(rows, cols, search_radius)

    # ========================
    # 查询
    # ========================

    def __len__(self):
        return self.graph.number_of_nodes()

    def __contains__(self, word):
        return isinstance(word, str) and fold(word) in self.word_index

    def get(self, word):
        """按词（大小写不敏感）取节点，不存在返回 None。"""
        node_id = self.word_index.get(fold(word)) if word else None
        return self.graph.nodes[node_id] if node_id is not None else None

    def get_node(self, node_id):
        if node_id in self.graph:
            return self.graph.nodes[node_id]
        return None

    def nodes(self):
        """所有节点属性字典（按 id 顺序）。"""
        return [self.graph.nodes[n] for n in sorted(self.graph.nodes)]

    def neighbors(self, node_id):
        return list(self.graph.neighbors(node_id)) if node_id in self.graph else []

    def connection_strength(self, a, b):
        if self.graph.has_edge(a, b):
            return self.graph.edges[a, b]["weight"]
        return 0.0

    def connection_strengths(self, node_id):
        """邻居 id -> 连接强度。"""
        if node_id not in self.graph:
            return {}
        return {nb: data["weight"] for nb, data in self.graph[node_id].items()}

    # ========================
    # 网格容量
    # ========================

    def layer_capacity(self):
        """单层可放置的格子数（搜索半径内且在网格范围内），每层都相同。"""
        return len(self._spiral)

    def free_slots(self, layer):
        return self.layer_capacity() - len(self._occupied.get(layer, {}))

    def _find_cell(self, layer):
        occupied = self._occupied.get(layer, {})
        for cell in self._spiral:
            if cell not in occupied:
                return cell
        return None

    def expand(self, extra_layers=1):
        """增加层数（批量训练前预扩容）。"""
        if extra_layers < 0:
            raise ValueError("extra_layers 不能为负数")
        self.layers += extra_layers
        return self.layers

    # ========================
    # 写入
    # ========================

    def _generate_id(self):
        node_id = f"{self.side}_{self._next_id:06d}"
        self._next_id += 1
        return node_id

    def _push_history(self, node, value):
        node["activation_history"].append(round(value, 6))
        if len(node["activation_history"]) > ACTIVATION_HISTORY_LIMIT:
            del node["activation_history"][:-ACTIVATION_HISTORY_LIMIT]

    def set_activation(self, node_id, value):
        """记录一次激活：更新 activation / last_activation_at / 历史。"""
        node = self.graph.nodes[node_id]
        node["activation"] = max(0.0, min(1.0, value))
        node["last_activation_at"] = self.clock()
        self._push_history(node, node["activation"])
        return node

    def add_word(self, word, layer_hint=0, parent_word=None):
        """
        添加一个词；已存在则强化。

        参数:
            word: str - 词（保留原始大小写用于展示）
            layer_hint: int - 新节点放置的层（超出范围会被截断）
            parent_word: str | None - 引起本词的前一个词，用于建立连接
        返回:
            dict | None - 节点属性字典；网格已满时返回 None
        """
        if not word or not isinstance(word, str):
            return None
        if layer_hint < 0:
            raise ValueError(f"layer_hint 不能为负数: {layer_hint}")

        now = self.clock()
        existing = self.get(word)

        if existing is not None:
            existing["count"] += 1
            existing["frequency"] += 1
            existing["modified_at"] = now
            existing["activation"] = min(1.0, existing["activation"] + REPEAT_ACTIVATION_BOOST)
            self._push_history(existing, existing["activation"])
            self._link_parent(existing, parent_word)
            return existing

        layer = min(layer_hint, self.layers - 1)
        cell = self._find_cell(layer)
        if cell is None:
            logger.warning("[%s] 第 %d 层已满，无法放置词 %r", self.side, layer, word)
            return None

        node_id = self._generate_id()
        low, high = IMPORTANCE_RANGE
        self.graph.add_node(
            node_id,
            id=node_id,
            word=word,
            side=self.side,
            layer=layer,
            activation=NEW_NODE_ACTIVATION,
            activation_history=[NEW_NODE_ACTIVATION],
            count=1,
            frequency=1,
            last_activation_at=now,
            created_at=now,
            modified_at=now,
            parent_words=[],
            category=categorize_word(word),
            sentiment=calculate_sentiment(word),
            importance=int(self.rng.integers(low, high + 1)),
            semantic_vector=semantic_vector(word),
        )
        self.word_index[fold(word)] = node_id
        self._cells[node_id] = (layer, cell[0], cell[1])
        self._occupied.setdefault(layer, {})[cell] = node_id

        node = self.graph.nodes[node_id]
        self._link_parent(node, parent_word)
        return node

    def _link_parent(self, node, parent_word):
        if not parent_word:
            return
        parent = self.get(parent_word)
        if parent is None or parent["id"] == node["id"]:
            return

        if parent_word not in node["parent_words"]:
            node["parent_words"].append(parent_word)

        a, b = node["id"], parent["id"]
        if self.graph.has_edge(a, b):
            edge = self.graph.edges[a, b]
            edge["weight"] = min(1.0, edge["weight"] + CONNECTION_WEIGHT_STEP)
        else:
            self.graph.add_edge(a, b, weight=INITIAL_CONNECTION_WEIGHT)

    # ========================
    # 维护
    # ========================

    def evict_layer(self, layer, count=1):
        """
        LRU-by-activation 淘汰：移除该层激活值最低的节点（并列时最久未激活者优先）。

        被淘汰节点的边一并删除，只释放它自己的格子，不影响其他已占用格子。

        返回:
            list[str] - 被淘汰的词
        """
        occupied = self._occupied.get(layer, {})
        candidates = [self.graph.nodes[nid] for nid in occupied.values()]
        candidates.sort(key=lambda n: (n["activation"], n["last_activation_at"]))

        evicted = []
        for node in candidates[:max(0, count)]:
            node_id = node["id"]
            _, row, col = self._cells.pop(node_id)
            del occupied[(row, col)]
            del self.word_index[fold(node["word"])]
            self.graph.remove_node(node_id)
            evicted.append(node["word"])

        if evicted:
            logger.info("[%s] 第 %d 层淘汰 %d 个节点", self.side, layer, len(evicted))
        return evicted

    def decay_activations(self, rate):
        """所有节点激活值乘以 (1 - rate)。"""
        factor = max(0.0, 1.0 - rate)
        for _, data in self.graph.nodes(data=True):
            data["activation"] = data["activation"] * factor

    # ========================
    # 序列化
    # ========================

    def to_dict(self):
        return {
            "side": self.side,
            "layers": self.layers,
            "rows": self.rows,
            "cols": self.cols,
            "search_radius": self.search_radius,
            "next_id": self._next_id,
            "nodes": [dict(self.graph.nodes[n], cell=list(self._cells[n]))
                      for n in sorted(self.graph.nodes)],
            "edges": [[a, b, data["weight"]]
                      for a, b, data in self.graph.edges(data=True)],
        }

    @classmethod
    def from_dict(cls, data, rng=None, clock=time.time):
        graph = cls(
            side=data["side"],
            layers=data.get("layers", DEFAULT_LAYERS),
            rows=data.get("rows", DEFAULT_ROWS),
            cols=data.get("cols", DEFAULT_COLS),
            search_radius=data.get("search_radius", DEFAULT_SEARCH_RADIUS),
            rng=rng,
            clock=clock,
        )
        for raw in data.get("nodes", []):
            attrs = dict(raw)
            layer, row, col = attrs.pop("cell")
            node_id = attrs["id"]
            graph.graph.add_node(node_id, **attrs)
            graph.word_index[fold(attrs["word"])] = node_id
            graph._cells[node_id] = (layer, row, col)
            graph._occupied.setdefault(layer, {})[(row, col)] = node_id
        for a, b, weight in data.get("edges", []):
            graph.graph.add_edge(a, b, weight=weight)
        graph._next_id = data.get("next_id", len(graph) + 1)
        return graph

    def copy(self):
        """深拷贝（共享 rng 与 clock），批量训练时用作工作副本。"""
        return WordGraph.from_dict(copy.deepcopy(self.to_dict()),
                                   rng=self.rng, clock=self.clock)

    def get_stats(self):
        return {
            "side": self.side,
            "nodes": len(self),
            "edges": self.graph.number_of_edges(),
            "layers": self.layers,
            "layer_capacity": self.layer_capacity(),
            "occupied_layers": sorted(k for k, v in self._occupied.items() if v),
        }

    def __repr__(self):
        return (f"WordGraph(side={self.side}, nodes={len(self)}, "
                f"edges={self.graph.number_of_edges()}, layers={self.layers})")
