# -*- coding: utf-8 -*-
"""
土耳其语自学习对话代理模块

主入口:
    from sinir_agi import NeuralChatAgent

    # 纯内存模式
    agent = NeuralChatAgent(seed=42)

    # 持久化模式（构造时尝试从目录加载）
    agent = NeuralChatAgent(data_dir="./agent_data")

两侧词图:
    input - 用户话语中出现的词
    output - 系统回答中出现的词

三大学习机制:
    训练强化 - 重复出现的词 / 词对自动强化
    使用强化 - query 命中训练对后强化对应关系
    遗忘扫描 - refresh 按天减弱长期未用的关系

核心组件:
- agent: NeuralChatAgent 统一 API（推荐使用）
- word_graph: 分层网格词图（networkx）+ 螺旋搜索放置 + LRU 淘汰
- relations: 输入词 -> 输出词 关系账本（强化 / 反馈 / 遗忘）
- propagation: 多跳激活扩散
- responder: 回答合成（反向查找 / 语料匹配 / 外部检索 / 模板）
- episodic: 情景记忆（短期 / 长期 / 主题簇）
- trainer: 批量训练（含 CSV）
- lexicon: 土耳其语词法工具（分词、相似度、问句类型）
"""

# 统一 API（推荐入口）
from .agent import NeuralChatAgent

# 底层模块（高级用户直接使用）
from .word_graph import WordGraph, spiral_cells
from .relations import RelationLedger, create_relation, reinforce_relation, weaken_relations
from .propagation import propagate_activation
from .responder import respond, find_reverse_answer, dedupe_sentences, is_near_duplicate
from .episodic import EpisodicMemory
from .trainer import BatchTrainer, read_training_csv
from .lexicon import tokenize, word_similarity, determine_question_type
