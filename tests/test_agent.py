# -*- coding: utf-8 -*-
"""
NeuralChatAgent 统一 API 端到端测试

测试内容:
    Test 1: 空批量训练 (不改变任何状态)
    Test 2: 训练 + 语料命中 ("Merhaba" -> "Merhaba! Nasılsınız?")
    Test 3: 反向查找 + 关系强化 ("Ankara nedir?"，只强化匹配的训练对)
    Test 4: 批量训练原子性 (中途异常时状态不变)
    Test 5: 用户纠正 (correct -> 反馈)
    Test 6: 快照 / 恢复 + schema_version 校验
    Test 7: 持久化 (save + load + 损坏文件)
    Test 8: CSV 训练 (自定义列名、空单元格跳过、缺列报错)
    Test 9: refresh 维护扫描 + 情景记忆
    Test 10: repr + get_stats + 空查询
    Test 11: 双向关系采样 (采样率 0 / 1，重复词对强化)

运行方式:
    python tests/test_agent.py
"""

import sys
import os
import time
import json
import shutil
import tempfile

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), ".."))

import numpy as np
import pandas as pd

from sinir_agi import NeuralChatAgent
from sinir_agi.relations import DAY_SECONDS, RelationLedger
from sinir_agi.trainer import BatchTrainer
from sinir_agi.word_graph import WordGraph


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance_days(self, days):
        self.now += days * DAY_SECONDS


def print_sep(title):
    print(f"\n{'='*60}")
    print(f"  {title}")
    print(f"{'='*60}")


def test_1_empty_batch():
    """Test 1: 空批量训练"""
    print_sep("Test 1: 空批量训练")

    agent = NeuralChatAgent(seed=1)
    stats = agent.train_batch([])
    assert stats["items_processed"] == 0
    assert stats["node_count"] == 0 and stats["relation_count"] == 0
    assert stats["training_count"] == 0
    assert stats["last_training_at"] is None
    print(f"  [*] 空批量: {stats}")

    stats = agent.train_batch([{"input": "  ", "output": "cevap"}, {"input": "soru"}])
    assert stats["items_skipped"] == 2 and stats["training_count"] == 0
    assert agent.get_stats()["node_count"] == 0
    print(f"  [*] 空训练对被跳过: skipped={stats['items_skipped']}")


def test_2_corpus_answer():
    """Test 2: 训练 + 语料命中"""
    print_sep("Test 2: Merhaba")

    agent = NeuralChatAgent(seed=1)
    stats = agent.train_one("Merhaba", "Merhaba! Nasılsınız?")
    assert stats["training_count"] == 1
    assert stats["node_count"] == 3, f"输入 1 个词 + 输出 2 个词，实际: {stats['node_count']}"
    assert agent.get_relation("Merhaba", "Nasılsınız?") is not None
    print(f"  [*] 训练后: {stats}")

    result = agent.query("Merhaba")
    assert result["source"] == "corpus", result
    assert result["used_training"]["input"] == "Merhaba"
    assert result["response"] == "Merhaba! Nasılsınız?"
    assert abs(result["confidence"] - 0.7) < 1e-9, result["confidence"]
    print(f"  [*] {result['response']} (confidence={result['confidence']:.2f})")

    # 语料命中后关系被强化
    rel = agent.get_relation("Merhaba", "Nasılsınız?")
    assert rel["learning_count"] == 2
    assert agent.corpus[0]["usage_count"] == 1

    # 重复训练同一对：节点不新增，关系不新增
    before = agent.get_stats()
    agent.train_one("Merhaba", "Merhaba! Nasılsınız?")
    after = agent.get_stats()
    assert after["node_count"] == before["node_count"]
    assert after["relation_count"] >= before["relation_count"]
    assert len(agent.relations()) == 2
    assert agent.get_node("input", "merhaba")["count"] == 2


def test_3_reverse_lookup():
    """Test 3: 反向查找 + 关系强化"""
    print_sep("Test 3: Ankara nedir?")

    agent = NeuralChatAgent(seed=1)
    agent.train_one("Türkiye'nin başkenti neresidir", "Ankara")

    result = agent.query("Ankara nedir?")
    assert result["source"] == "reverse"
    assert result["response"] == "Ankara, Türkiye'nin başkentidir.", result["response"]
    assert result["confidence"] >= 0.56
    print(f"  [*] {result['response']} (confidence={result['confidence']:.2f})")

    rel = agent.get_relation("Türkiye'nin", "Ankara")
    assert abs(rel["dependency"] - 50.8) < 1e-9, f"应强化 0.8，实际: {rel['dependency']}"
    assert rel["learning_count"] == 2
    print(f"  [*] 关系强化: dependency={rel['dependency']}")

    # 只强化真正匹配的训练对，前面包含 "Ankara" 子串的训练对不受影响
    agent = NeuralChatAgent(seed=1, bidirectional_rate=0.0)
    agent.train_one("Şehir halkı nasıldır", "Ankaralılar misafirperverdir")
    agent.train_one("Türkiye'nin başkenti neresidir", "Ankara")

    result = agent.query("Ankara nedir?")
    assert result["response"] == "Ankara, Türkiye'nin başkentidir.", result["response"]
    matched = agent.get_relation("başkenti", "Ankara")
    decoy = agent.get_relation("Şehir", "Ankaralılar")
    assert abs(matched["dependency"] - 50.8) < 1e-9, matched["dependency"]
    assert decoy["dependency"] == 50.0, f"无关训练对不应被强化: {decoy['dependency']}"
    assert decoy["learning_count"] == 1
    print(f"  [*] 匹配训练对 {matched['dependency']}, 无关训练对 {decoy['dependency']}")


def test_4_batch_atomicity():
    """Test 4: 批量训练原子性"""
    print_sep("Test 4: 原子性")

    agent = NeuralChatAgent(seed=1)
    agent.train_one("Merhaba", "Selam")
    before = agent.snapshot()

    items = [{"input": f"soru{i} kelime", "output": f"cevap{i} kelime"} for i in range(150)]

    def explode(current, total):
        raise RuntimeError("kesinti")

    try:
        agent.train_batch(items, progress_callback=explode)
        raise AssertionError("进度回调的异常应向上传播")
    except RuntimeError:
        pass

    assert agent.snapshot() == before, "中途失败后状态应保持不变"
    assert agent.get_stats()["training_count"] == 1
    print(f"  [*] 中途失败后状态不变: {agent}")

    calls = []
    stats = agent.train_batch(items, progress_callback=lambda c, t: calls.append((c, t)))
    assert calls == [(100, 150)]
    assert stats["items_processed"] == 150
    assert stats["training_count"] == 151
    print(f"  [*] 正常训练: {stats['items_processed']} 条, 进度回调 {calls}")


def test_5_correction():
    """Test 5: 用户纠正"""
    print_sep("Test 5: correct")

    agent = NeuralChatAgent(seed=1)
    stats = agent.correct("Başkent neresi", "Ankara")
    assert stats["feedback_applied"] == 2
    assert agent.get_relation("Başkent", "Ankara")["feedback"] == 10.0
    assert agent.get_relation("neresi", "Ankara")["feedback"] == 10.0

    agent.correct("Başkent neresi", "Ankara", feedback=-50)
    assert agent.get_relation("Başkent", "Ankara")["feedback"] == -40.0
    print(f"  [*] feedback: {agent.get_relation('Başkent', 'Ankara')['feedback']}")


def test_6_snapshot_restore():
    """Test 6: 快照 / 恢复"""
    print_sep("Test 6: snapshot / restore")

    agent = NeuralChatAgent(seed=1)
    agent.train_one("Merhaba", "Merhaba! Nasılsınız?")
    agent.remember("Kullanıcı kahveyi seviyor", type="long-term")
    snap = agent.snapshot()
    assert snap["schema_version"] == 1
    json.dumps(snap, ensure_ascii=False)

    agent.train_one("Nasılsın", "İyiyim")
    assert agent.get_stats()["training_count"] == 2

    agent.restore(snap)
    stats = agent.get_stats()
    assert stats["training_count"] == 1
    assert stats["node_count"] == 3
    assert agent.get_node("input", "Nasılsın") is None
    assert agent.memory.find("Kullanıcı kahveyi seviyor") is not None
    print(f"  [*] 恢复后: {agent}")

    for bad in (dict(snap, schema_version=99), {"schema_version": 1}, "snapshot"):
        try:
            agent.restore(bad)
            raise AssertionError("错误快照应抛出 ValueError")
        except ValueError as e:
            print(f"  [*] 拒绝: {e}")
    assert agent.get_stats()["training_count"] == 1, "拒绝后状态不变"


def test_7_persistence():
    """Test 7: 持久化"""
    print_sep("Test 7: save / load")

    tmpdir = tempfile.mkdtemp(prefix="sinir_agi_")
    try:
        agent = NeuralChatAgent(seed=1)
        agent.train_one("Türkiye'nin başkenti neresidir", "Ankara")
        agent.train_one("Merhaba", "Merhaba! Nasılsınız?")
        agent.save(tmpdir)
        assert os.path.exists(os.path.join(tmpdir, "config.json"))
        assert os.path.exists(os.path.join(tmpdir, "state.json"))

        loaded = NeuralChatAgent(data_dir=tmpdir)
        assert loaded.get_stats()["training_count"] == 2
        assert loaded.get_stats()["relation_count"] == agent.get_stats()["relation_count"]
        assert loaded.query("Ankara nedir?")["response"] == "Ankara, Türkiye'nin başkentidir."
        print(f"  [*] 加载后: {loaded}")

        fresh = NeuralChatAgent()
        assert fresh.load(os.path.join(tmpdir, "yok")) is False

        with open(os.path.join(tmpdir, "state.json"), "w", encoding="utf-8") as f:
            f.write("{bozuk")
        broken = NeuralChatAgent(data_dir=tmpdir)
        assert broken.get_stats()["training_count"] == 0, "损坏文件应退回空状态"
        assert broken.load(tmpdir) is False
        print(f"  [*] 损坏文件: load() -> False，保持空状态")
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


def test_8_csv_training():
    """Test 8: CSV 训练"""
    print_sep("Test 8: CSV")

    tmpdir = tempfile.mkdtemp(prefix="sinir_agi_csv_")
    try:
        path = os.path.join(tmpdir, "egitim.csv")
        pd.DataFrame({
            "soru": ["Merhaba", "Nasılsın", None],
            "cevap": ["Merhaba! Nasılsınız?", "İyiyim, teşekkürler.", "Boş soru"],
        }).to_csv(path, index=False)

        agent = NeuralChatAgent(seed=1)
        stats = agent.train_from_csv(path, input_column="soru", output_column="cevap")
        assert stats["items_processed"] == 2
        assert stats["items_skipped"] == 1
        assert stats["training_count"] == 2
        print(f"  [*] CSV 训练: {stats}")

        try:
            agent.train_from_csv(path)
            raise AssertionError("缺少列时应抛出 ValueError")
        except ValueError as e:
            print(f"  [*] 缺列: {e}")
        assert agent.get_stats()["training_count"] == 2
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


def test_9_refresh():
    """Test 9: refresh 维护扫描"""
    print_sep("Test 9: refresh")

    clock = FakeClock()
    agent = NeuralChatAgent(seed=1, clock=clock)
    agent.train_one("Kitap okumak", "Kitap okumak güzel bir alışkanlık")
    agent.query("Kitap okumak hakkında ne düşünüyorsun")
    assert len(agent.memory) == 1

    result = agent.refresh()
    assert result["relations_weakened"] == 0

    strengths = {r["id"]: r["strength"] for r in agent.relations()}
    clock.advance_days(10)
    result = agent.refresh()
    assert result["relations_weakened"] == agent.get_stats()["relation_count"]
    for rel in agent.relations():
        assert rel["strength"] < strengths[rel["id"]]
    assert result["memories_consolidated"] == 1
    assert len(agent.memory.long_term) == 1
    print(f"  [*] 10 天后: {result}")

    recalled = agent.recall("kitap okumak")
    assert recalled and recalled[0]["content"] == "Kitap okumak hakkında ne düşünüyorsun"


def test_10_repr_and_stats():
    """Test 10: repr + get_stats + 空查询"""
    print_sep("Test 10: repr + stats")

    agent = NeuralChatAgent(seed=1, emoji_rate=0.0)
    result = agent.query("")
    assert isinstance(result["response"], str) and result["response"]
    assert result["used_training"] is None
    assert len(agent.memory) == 0, "空查询不写入情景记忆"

    agent.train_one("Merhaba", "Selam")
    stats = agent.get_stats()
    for key in ("node_count", "relation_count", "training_count", "last_training_at",
                "input_graph", "output_graph", "relations", "memory", "config"):
        assert key in stats, f"缺少 {key}"
    assert stats["last_training_at"] is not None
    assert repr(agent) == "NeuralChatAgent(nodes=2, relations=1, pairs=1, memories=0)" or \
        repr(agent) == "NeuralChatAgent(nodes=2, relations=2, pairs=1, memories=0)"
    print(f"  [*] {agent}")

    assert agent.evict_layer("output", 0) == ["Selam"]
    try:
        agent.evict_layer("middle", 0)
        raise AssertionError("未知 side 应抛出 ValueError")
    except ValueError:
        pass


def test_11_bidirectional_sampling():
    """Test 11: 双向关系采样"""
    print_sep("Test 11: 双向关系采样")

    def make_trainer(rate, ledger=None, corpus=None):
        rng = np.random.default_rng(7)
        return BatchTrainer(WordGraph("input", rng=rng), WordGraph("output", rng=rng),
                            ledger if ledger is not None else RelationLedger(),
                            corpus or [], bidirectional_rate=rate, rng=rng)

    items = [{"input": "Başkent neresi", "output": "Ankara"}]

    out = make_trainer(0.0).train(items)
    assert out["ledger"].bidirectional_relations() == []
    assert len(out["ledger"].relations()) == 2
    print(f"  [*] rate=0.0: 双向账本为空")

    out = make_trainer(1.0).train(items)
    ledger = out["ledger"]
    bi = ledger.get_bidirectional("Ankara", "Başkent")
    assert bi is not None and bi["bidirectional"] is True
    assert bi["dependency"] == 45.0 and bi["association"] == 45.0
    assert len(ledger.bidirectional_relations()) == 2
    print(f"  [*] rate=1.0: 角色互换关系 {bi['source_word']} -> {bi['target_word']}")

    # 重复词对: 主关系 +0.2，双向关系 +0.1
    out = make_trainer(1.0, ledger=ledger, corpus=out["corpus"]).train(items, next_pair_id=2)
    ledger = out["ledger"]
    bi = ledger.get_bidirectional("Ankara", "Başkent")
    assert abs(bi["dependency"] - 45.1) < 1e-9, bi["dependency"]
    assert bi["learning_count"] == 2
    assert abs(ledger.get("Başkent", "Ankara")["dependency"] - 50.2) < 1e-9
    assert len(ledger.bidirectional_relations()) == 2
    assert len(out["corpus"]) == 2
    print(f"  [*] 重复训练: 双向关系 dependency={bi['dependency']:.1f}")

    try:
        make_trainer(1.5)
        raise AssertionError("越界采样率应抛出 ValueError")
    except ValueError as e:
        print(f"  [*] 参数校验: {e}")


def main():
    print("=" * 60)
    print("  NeuralChatAgent - End-to-End Test")
    print("=" * 60)

    t_start = time.time()
    tests = [
        test_1_empty_batch,
        test_2_corpus_answer,
        test_3_reverse_lookup,
        test_4_batch_atomicity,
        test_5_correction,
        test_6_snapshot_restore,
        test_7_persistence,
        test_8_csv_training,
        test_9_refresh,
        test_10_repr_and_stats,
        test_11_bidirectional_sampling,
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

    if failed > 0:
        sys.exit(1)
    else:
        print("\n  ALL TESTS PASSED!")
        sys.exit(0)


if __name__ == "__main__":
    main()
