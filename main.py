# -*- coding: utf-8 -*-
"""
交互式演示：从 CSV 训练后进入对话循环

用法:
    python main.py --csv egitim.csv
    python main.py --csv egitim.csv --input-column soru --output-column cevap --data-dir ./agent_data
    python main.py --data-dir ./agent_data          # 直接加载已保存的状态

对话中的命令:
    :stats            打印统计信息
    :refresh          执行遗忘扫描 + 记忆巩固
    :fix <soru> => <cevap>   纠正上一轮回答
    :save             保存到 --data-dir
    :quit             退出
"""

import argparse
import logging
import sys

from tqdm import tqdm

from sinir_agi import NeuralChatAgent
from sinir_agi.trainer import read_training_csv

DEMO_PAIRS = [
    {"input": "Merhaba", "output": "Merhaba! Size nasıl yardımcı olabilirim?"},
    {"input": "Nasılsın", "output": "İyiyim, teşekkür ederim. Siz nasılsınız?"},
    {"input": "Türkiye'nin başkenti neresidir", "output": "Ankara"},
    {"input": "En kalabalık şehir hangisi", "output": "İstanbul"},
    {"input": "Teşekkürler", "output": "Rica ederim, her zaman!"},
]


def train_with_progress(agent, items, batch_size=200):
    """按批训练并用 tqdm 显示进度。"""
    stats = None
    for start in tqdm(range(0, len(items), batch_size), desc="training"):
        stats = agent.train_batch(items[start:start + batch_size])
    return stats


def build_parser():
    parser = argparse.ArgumentParser(description="Türkçe kendi kendine öğrenen sohbet ajanı")
    parser.add_argument("--csv", help="训练 CSV 文件")
    parser.add_argument("--input-column", default="input")
    parser.add_argument("--output-column", default="output")
    parser.add_argument("--data-dir", help="状态保存 / 加载目录")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    agent = NeuralChatAgent(data_dir=args.data_dir, seed=args.seed)

    if args.csv:
        items = read_training_csv(args.csv, args.input_column, args.output_column)
        stats = train_with_progress(agent, items)
        print(f"训练完成: {stats}")
    elif not agent.get_stats()["training_count"]:
        agent.train_batch(DEMO_PAIRS)
        print(f"未指定 CSV，使用内置示例语料 ({len(DEMO_PAIRS)} 条)")

    print(agent)
    print("输入 :quit 退出")

    while True:
        try:
            text = input("> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            break

        if not text:
            continue
        if text == ":quit":
            break
        if text == ":stats":
            stats = agent.get_stats()
            print(f"  节点 {stats['node_count']}, 关系 {stats['relation_count']}, "
                  f"训练对 {stats['training_count']}, 记忆 {stats['memory']}")
            continue
        if text == ":refresh":
            print(f"  {agent.refresh()}")
            continue
        if text == ":save":
            if not args.data_dir:
                print("  未指定 --data-dir")
            else:
                agent.save(args.data_dir)
                print(f"  已保存到 {args.data_dir}")
            continue
        if text.startswith(":fix "):
            question, sep, answer = text[len(":fix "):].partition("=>")
            if not sep or not question.strip() or not answer.strip():
                print("  格式: :fix <soru> => <cevap>")
                continue
            stats = agent.correct(question.strip(), answer.strip())
            print(f"  已学习 (反馈 {stats['feedback_applied']} 条关系)")
            continue

        result = agent.query(text)
        print(f"{result['response']}  [{result['source']}, {result['confidence']:.2f}]")

    if args.data_dir:
        agent.save(args.data_dir)
    return 0


if __name__ == "__main__":
    sys.exit(main())
