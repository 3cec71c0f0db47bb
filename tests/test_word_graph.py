# -*- coding: utf-8 -*-
"""
WordGraph 分层网格词图测试

测试内容:
    Test 1: 螺旋扫描顺序 (中心优先、不重复、网格裁剪)
    Test 2: 重复添加同一个词 (大小写不敏感、计数累加、激活上限)
    Test 3: 父词连接 (初始 0.5，重复 +0.1)
    Test 4: 网格已满 + LRU-by-activation 淘汰
    Test 5: 激活历史长度上限
    Test 6: 工作副本独立性 (copy)
    Test 7: 参数校验

运行方式:
    python tests/test_word_graph.py
"""

import sys
import os
import time

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), ".."))

import numpy as np

from sinir_agi.word_graph import (
    ACTIVATION_HISTORY_LIMIT,
    INITIAL_CONNECTION_WEIGHT,
    NEW_NODE_ACTIVATION,
    WordGraph,
    spiral_cells,
)


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def print_sep(title):
    print(f"\n{'='*60}")
    print(f"  {title}")
    print(f"{'='*60}")


def test_1_spiral_order():
    """Test 1: 螺旋扫描顺序"""
    print_sep("Test 1: spiral_cells")

    cells = spiral_cells(50, 50, 5)
    assert len(cells) == 121, f"半径 5 应有 121 个格子，实际: {len(cells)}"
    assert cells[0] == (25, 25), f"第一个格子应为中心，实际: {cells[0]}"
    assert len(set(cells)) == len(cells), "格子不应重复"
    assert all(max(abs(r - 25), abs(c - 25)) <= 5 for r, c in cells)
    print(f"  [*] 50x50 半径 5: {len(cells)} 个格子，起点 {cells[0]}")

    # 第一圈在中心之后
    ring1 = cells[1:9]
    assert all(max(abs(r - 25), abs(c - 25)) == 1 for r, c in ring1), f"第一圈错误: {ring1}"

    small = spiral_cells(3, 3, 5)
    assert len(small) == 9, f"3x3 网格应被裁剪为 9 格，实际: {len(small)}"
    print(f"  [*] 3x3 半径 5 裁剪为 {len(small)} 格")


def test_2_idempotent_add():
    """Test 2: 重复添加同一个词"""
    print_sep("Test 2: 重复添加")

    g = WordGraph("input", rng=np.random.default_rng(0), clock=FakeClock())
    first = g.add_word("Ankara")
    assert first["activation"] == NEW_NODE_ACTIVATION
    assert 10 <= first["importance"] <= 40, f"importance 越界: {first['importance']}"

    second = g.add_word("ankara")
    assert len(g) == 1, f"同一个词不应新建节点，实际节点数: {len(g)}"
    assert second["id"] == first["id"]
    assert second["count"] == 2 and second["frequency"] == 2
    assert second["activation"] == 1.0, f"激活应截断到 1.0，实际: {second['activation']}"
    assert second["word"] == "Ankara", "应保留首次出现的原始大小写"
    print(f"  [*] {second['word']}: count={second['count']}, activation={second['activation']}")

    assert "ANKARA" in g
    assert g.get("aNkArA") is second
    print(f"  [*] 大小写不敏感查找 OK")

    # 土耳其语大小写: I -> ı, İ -> i
    light = g.add_word("IŞIK")
    assert g.add_word("ışık") is light
    assert g.get("Işık") is light and light["count"] == 2
    city = g.add_word("İzmir")
    assert g.get("izmir") is city
    assert len(g) == 3
    print(f"  [*] 土耳其语大小写折叠 OK: {light['word']}, {city['word']}")


def test_3_parent_connection():
    """Test 3: 父词连接"""
    print_sep("Test 3: 父词连接")

    g = WordGraph("output", rng=np.random.default_rng(0), clock=FakeClock())
    a = g.add_word("Ankara")
    b = g.add_word("başkent", parent_word="Ankara")

    assert g.connection_strength(a["id"], b["id"]) == INITIAL_CONNECTION_WEIGHT
    assert b["parent_words"] == ["Ankara"]
    print(f"  [*] 初始连接强度: {g.connection_strength(a['id'], b['id'])}")

    g.add_word("başkent", parent_word="Ankara")
    strength = g.connection_strength(a["id"], b["id"])
    assert abs(strength - 0.6) < 1e-9, f"重复连接应 +0.1，实际: {strength}"
    assert b["parent_words"] == ["Ankara"], "parent_words 不应重复"
    print(f"  [*] 重复后连接强度: {strength}")

    # 父词不存在时不建边
    c = g.add_word("şehir", parent_word="yok")
    assert g.neighbors(c["id"]) == []
    print(f"  [*] 不存在的父词: 无连接 OK")


def test_4_full_grid_and_eviction():
    """Test 4: 网格已满 + 淘汰"""
    print_sep("Test 4: 网格已满 + 淘汰")

    clock = FakeClock()
    g = WordGraph("input", layers=1, rows=3, cols=3, search_radius=1,
                  rng=np.random.default_rng(1), clock=clock)
    assert g.layer_capacity() == 9

    words = [f"kelime{i}" for i in range(9)]
    for w in words:
        assert g.add_word(w) is not None
        clock.advance(1)
    assert g.free_slots(0) == 0

    overflow = g.add_word("fazla")
    assert overflow is None, "网格已满时应返回 None"
    assert len(g) == 9
    print(f"  [*] 第 10 个词被拒绝，节点数保持 {len(g)}")

    # 激活最低者先被淘汰
    target = g.get("kelime4")
    g.set_activation(target["id"], 0.05)
    evicted = g.evict_layer(0, 1)
    assert evicted == ["kelime4"], f"应淘汰激活最低的 kelime4，实际: {evicted}"
    assert "kelime4" not in g
    assert g.free_slots(0) == 1
    print(f"  [*] 淘汰: {evicted}，空位 {g.free_slots(0)}")

    # 被释放的格子可以重新使用
    again = g.add_word("fazla")
    assert again is not None
    assert g.free_slots(0) == 0

    # 高层提示被截断到最后一层
    assert g.add_word("yeni", layer_hint=99) is None
    print(f"  [*] 重新放置 OK")


def test_5_history_bound():
    """Test 5: 激活历史长度上限"""
    print_sep("Test 5: 激活历史上限")

    g = WordGraph("input", rng=np.random.default_rng(0), clock=FakeClock())
    node = g.add_word("merhaba")
    for i in range(50):
        g.set_activation(node["id"], (i % 10) / 10)

    assert len(node["activation_history"]) == ACTIVATION_HISTORY_LIMIT
    assert node["activation_history"][-1] == 0.9
    print(f"  [*] 历史长度: {len(node['activation_history'])}")

    g.decay_activations(0.5)
    assert abs(node["activation"] - 0.45) < 1e-9
    print(f"  [*] 衰减后激活: {node['activation']}")


def test_6_copy_is_independent():
    """Test 6: 工作副本独立性"""
    print_sep("Test 6: copy")

    g = WordGraph("input", rng=np.random.default_rng(0), clock=FakeClock())
    g.add_word("Türkiye'nin")
    g.add_word("başkenti", parent_word="Türkiye'nin")

    working = g.copy()
    working.add_word("neresidir", parent_word="başkenti")
    working.add_word("Türkiye'nin")

    assert len(g) == 2 and len(working) == 3
    assert g.get("Türkiye'nin")["count"] == 1
    assert working.get("Türkiye'nin")["count"] == 2
    assert g.graph.number_of_edges() == 1 and working.graph.number_of_edges() == 2
    print(f"  [*] 原图 {g}，副本 {working}")

    restored = WordGraph.from_dict(working.to_dict())
    assert restored.get("neresidir")["id"] == working.get("neresidir")["id"]
    new = restored.add_word("yeni")
    assert new["id"] == "input_000004", f"编号应继续递增，实际: {new['id']}"
    print(f"  [*] from_dict 后编号继续: {new['id']}")


def test_7_validation():
    """Test 7: 参数校验"""
    print_sep("Test 7: 参数校验")

    try:
        WordGraph("middle")
        raise AssertionError("未知 side 应抛出 ValueError")
    except ValueError as e:
        print(f"  [*] 未知 side: {e}")

    g = WordGraph("input")
    try:
        g.add_word("kelime", layer_hint=-1)
        raise AssertionError("负数 layer_hint 应抛出 ValueError")
    except ValueError as e:
        print(f"  [*] 负数 layer_hint: {e}")

    assert g.add_word("") is None
    assert g.expand(2) == 22
    print(f"  [*] 扩层后: {g.layers}")


def main():
    print("=" * 60)
    print("  WordGraph - Test")
    print("=" * 60)

    t_start = time.time()
    tests = [
        test_1_spiral_order,
        test_2_idempotent_add,
        test_3_parent_connection,
        test_4_full_grid_and_eviction,
        test_5_history_bound,
        test_6_copy_is_independent,
        test_7_validation,
    ]
    passed = 0
    failed = 0
    for test in tests:
        try:
            test()
            passed += 1
        except Exception as e:
            print(f"  !!! {test.__name__} FAILED: {e}")
            import traceback
            traceback.print_exc()
            failed += 1

    elapsed = time.time() - t_start
    print(f"\n{'='*60}")
    print(f"  RESULTS: {passed}/{len(tests)} passed, {failed} failed")
    print(f"  Time: {elapsed:.2f}s")
    print(f"{'='*60}")

    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
