# -*- coding: utf-8 -*-
"""
回答合成器

三级优先级：
    reverse  - 反向查找：对 "X nedir?" / "X nerede?" 类问题，在语料中找输出包含 X 的训练对，
               用其输入改写成 "X, <输入去掉疑问词>dir." 的陈述句      （最高优先）
    corpus   - 语料最佳匹配：按主要概念 / 模糊词 / 原话包含 打分，得分 > 3 采用其输出
    fallback - 模板合成：用主要概念和高激活词拼出回答，可能附带一个表情

可选外部检索（search 协作者）在 corpus 未命中、fallback 之前调用。

句子去重是一个独立策略函数（词集子集 或 Jaccard 超过阈值），便于单独测试与调参。
合成过程不会抛出异常：内部错误记录日志后返回固定的致歉回答。
"""

import logging
import re

import numpy as np

from .lexicon import (
    capitalize_first,
    determine_question_type,
    ends_with_copula,
    ensure_terminal_punctuation,
    fold,
    strip_boilerplate,
    strip_trailing_question,
    word_similarity,
)

logger = logging.getLogger(__name__)

REVERSE_MIN_SCORE = 0.7
REVERSE_FUZZY_MIN = 0.8
REVERSE_CONFIDENCE_FACTOR = 0.8
REVERSE_QUESTION_TYPES = ("what-is", "where-is")

CORPUS_MIN_SCORE = 3
CORPUS_CONFIDENCE_BONUS = 0.2
CORPUS_CONFIDENCE_CAP = 0.9
CONCEPT_FUZZY_MIN = 0.7
ECHO_MIN_WORD_LEN = 3

FALLBACK_MIN_CONFIDENCE = 0.3
HIGH_ACTIVATION = 0.7
DEDUP_JACCARD_THRESHOLD = 0.75
DEDUP_MIN_WORDS = 3
DEFAULT_EMOJI_RATE = 0.4
SEARCH_MIN_RELEVANCE = 0.5

NO_INFO_MESSAGE = ("Üzgünüm, bu konuda bilgi bulamadım. "
                   "Daha açık bir şekilde ifade edebilir misiniz?")

EMOJI_POOLS = {
    "knowledge": ["💡", "📚", "🧠", "✨", "🔍"],
    "advice": ["👍", "✅", "⭐️", "🌟", "💯"],
    "humor": ["😄", "😊", "😁", "🙂", "😉"],
    "feedback": ["🙌", "👏", "🎯", "🏆", "🔑"],
}

# 按顺序嗅探，命中即用；都不命中用 knowledge
EMOJI_TRIGGERS = [
    ("advice", ["öneririm", "tavsiye", "yapmanız gereken", "daha iyi olur"]),
    ("humor", ["komik", "eğlenceli", "güldüren", "espri"]),
    ("feedback", ["tebrikler", "harika", "aferin", "iyi iş"]),
]

RE_SENTENCE = re.compile(r"[^.!?]+[.!?]*")

# 反向匹配类型的排序权重：exact > prefix > substring > fuzzy
_MATCH_RANK = {"exact": 3, "prefix": 2, "substring": 1, "fuzzy": 0}


# ========================
# 句子去重策略
# ========================

def is_near_duplicate(a, b, jaccard_threshold=DEDUP_JACCARD_THRESHOLD):
    """
    两个句子是否近似重复：任一方词集是另一方的子集，或 Jaccard 相似度 > 阈值。

    参数:
        a, b: str - 句子
        jaccard_threshold: float - Jaccard 阈值；>= 1 时只看子集关系
    返回:
        bool
    """
    words_a = set(fold(a).split())
    words_b = set(fold(b).split())
    if not words_a or not words_b:
        return False
    if words_a <= words_b or words_b <= words_a:
        return True
    jaccard = len(words_a & words_b) / len(words_a | words_b)
    return jaccard > jaccard_threshold


def split_sentences(text):
    """按 . ! ? 切句，保留句末标点。"""
    return [s.strip() for s in RE_SENTENCE.findall(text or "") if s.strip(" .!?\n\t")]


def _sentence_core(sentence):
    return sentence.strip().rstrip(".!?").strip()


def dedupe_sentences(sentences, jaccard_threshold=DEDUP_JACCARD_THRESHOLD,
                     min_words=0):
    """
    保序去重：与已保留句子近似重复的句子被丢弃。

    参数:
        sentences: list[str]
        jaccard_threshold: float - 传给 is_near_duplicate
        min_words: int - 少于此词数的句子直接保留，也不参与比较
    返回:
        list[str]
    """
    kept = []
    for sentence in sentences:
        core = _sentence_core(sentence)
        if len(core.split()) < min_words:
            kept.append(sentence)
            continue
        duplicate = False
        for existing in kept:
            existing_core = _sentence_core(existing)
            if len(existing_core.split()) < min_words:
                continue
            if is_near_duplicate(core, existing_core, jaccard_threshold):
                duplicate = True
                break
        if not duplicate:
            kept.append(sentence)
    return kept


def _join_sentences(sentences):
    return " ".join(sentences).strip()


# ========================
# 反向查找
# ========================

def _reverse_match(output_lower, subject_lower):
    if output_lower == subject_lower:
        return 1.0, "exact"
    if output_lower.startswith(subject_lower + " ") or output_lower.startswith(subject_lower + ","):
        return 0.9, "prefix"
    if re.search(r"(?<!\w)" + re.escape(subject_lower) + r"(?!\w)", output_lower):
        return 0.8, "substring"
    sim = word_similarity(output_lower, subject_lower)
    if sim > REVERSE_FUZZY_MIN:
        return sim, "fuzzy"
    return None, None


def _reverse_sentence(subject, pair_input):
    if "cevap" in pair_input or "yanıt" in pair_input:
        return capitalize_first(subject)

    if "neresi" in pair_input:
        clause = re.sub(r"\s+neresi.*$", "", pair_input, flags=re.I)
    elif "nerede" in pair_input:
        clause = re.sub(r"\s+nerede.*$", "", pair_input, flags=re.I)
    else:
        clause = strip_trailing_question(pair_input)
    clause = clause.strip().rstrip("?.!")

    if ends_with_copula(clause):
        sentence = f"{subject}, {clause}."
    else:
        sentence = f"{subject}, {clause}dir."
    sentence = sentence.replace("dirdir", "dir")
    return capitalize_first(sentence)


def find_reverse_answer(query, corpus):
    """
    反向查找："Ankara nedir?" -> "Ankara, Türkiye'nin başkentidir."

    只处理 what-is / where-is 且提取到主语的问题。评分:
        输出 == 主语                 1.0
        输出以 "主语 " / "主语," 开头  0.9
        输出中整词包含主语            0.8
        模糊相似度 > 0.8             相似度

    参数:
        query: str - 用户原话
        corpus: list[dict] - 训练对
    返回:
        dict | None - {"response", "confidence", "pair", "subject", "score", "match_type"}
    """
    qt = determine_question_type(query)
    subject = qt["subject"]
    if qt["type"] not in REVERSE_QUESTION_TYPES or not subject:
        return None

    subject_lower = fold(subject)
    best = None
    for pair in corpus:
        score, kind = _reverse_match(fold(pair["output"]).strip(), subject_lower)
        if score is None:
            continue
        key = (score, _MATCH_RANK[kind])
        if best is None or key > best[0]:
            best = (key, pair, kind)

    if best is None or best[0][0] < REVERSE_MIN_SCORE:
        return None

    (score, _), pair, kind = best
    response = strip_boilerplate(_reverse_sentence(subject, pair["input"]))
    return {
        "response": response,
        "confidence": score * REVERSE_CONFIDENCE_FACTOR,
        "pair": pair,
        "subject": subject,
        "score": score,
        "match_type": kind,
    }


# ========================
# 语料最佳匹配
# ========================

def score_pair(pair, primary_concepts, recent_utterance=""):
    """
    训练对打分：
        +3  每个主要概念是输入的子串
        +2  每个 (输入词, 主要概念) 模糊相似度 > 0.7
        +2  输入包含用户原话
    """
    input_lower = fold(pair["input"])
    concepts = [fold(c) for c in primary_concepts]
    score = 0
    for concept in concepts:
        if concept in input_lower:
            score += 3
    for word in input_lower.split():
        for concept in concepts:
            if word_similarity(word, concept) > CONCEPT_FUZZY_MIN:
                score += 2
    recent = fold(recent_utterance or "").strip()
    if recent and recent in input_lower:
        score += 2
    return score


def find_best_pair(corpus, primary_concepts, recent_utterance=""):
    """返回 (最高分训练对, 分数)；语料为空返回 (None, 0)。同分取先出现者。"""
    best_pair, best_score = None, 0
    for pair in corpus:
        score = score_pair(pair, primary_concepts, recent_utterance)
        if best_pair is None or score > best_score:
            best_pair, best_score = pair, score
    return best_pair, best_score


def clean_corpus_output(pair):
    """清洗训练输出：模板前缀、开头对输入的复述、重复句子、标点和首字母。"""
    text = strip_boilerplate(pair["output"])
    original = text

    for word in fold(pair["input"]).split():
        if len(word) > ECHO_MIN_WORD_LEN:
            text = re.sub(r"^" + re.escape(word) + r"\s+", "", text, flags=re.I)
    if not text.strip():
        text = original

    sentences = split_sentences(text)
    if len(sentences) > 1:
        text = _join_sentences(dedupe_sentences(sentences, jaccard_threshold=1.0))

    return capitalize_first(ensure_terminal_punctuation(text.strip()))


# ========================
# 模板合成
# ========================

def pick_emoji_pool(text):
    lower = fold(text)
    for pool, triggers in EMOJI_TRIGGERS:
        if any(t in lower for t in triggers):
            return pool
    return "knowledge"


def _strip_echo(response, utterance):
    utterance = (utterance or "").strip()
    if not utterance:
        return response
    return re.sub(r"^" + re.escape(utterance) + r"\s*", "", response, flags=re.I)


def synthesize_fallback(activation_result, recent_utterance="", rng=None,
                        emoji_rate=DEFAULT_EMOJI_RATE):
    """
    用主要概念和高激活词拼出回答。

    返回:
        str - 回答文本
    """
    concepts = activation_result.get("primary_concepts", [])
    nodes = activation_result.get("activated_nodes", [])

    if concepts:
        response = "Anladığım kadarıyla " + ", ".join(concepts[:3]) + " hakkında konuşuyorsunuz. "
        high = [n["word"] for n in nodes if n["activation"] > HIGH_ACTIVATION][:5]
        if high:
            response += "Ayrıca " + ", ".join(high) + " konuları da önemli görünüyor."
        else:
            response += "Daha fazla bilgi verebilir misiniz?"
    else:
        response = NO_INFO_MESSAGE

    response = _strip_echo(response, recent_utterance)
    sentences = dedupe_sentences(split_sentences(response), min_words=DEDUP_MIN_WORDS)
    response = capitalize_first(ensure_terminal_punctuation(_join_sentences(sentences)))

    if rng is None:
        rng = np.random.default_rng()
    if sentences and rng.random() < emoji_rate:
        pool = EMOJI_POOLS[pick_emoji_pool(response)]
        response = f"{response} {pool[int(rng.integers(len(pool)))]}"
    return response


# ========================
# 外部检索
# ========================

def _search_answer(search, query):
    try:
        results = search(query) or []
    except Exception as e:
        logger.warning("外部检索失败 (%s)，忽略", e)
        return None
    results = [r for r in results if r.get("content")]
    if not results:
        return None
    best = max(results, key=lambda r: r.get("relevance", 0))
    if best.get("relevance", 0) < SEARCH_MIN_RELEVANCE:
        return None
    text = strip_boilerplate(best["content"].strip())
    return {
        "response": capitalize_first(ensure_terminal_punctuation(text)),
        "confidence": min(CORPUS_CONFIDENCE_CAP, float(best["relevance"])),
        "result": best,
    }


# ========================
# 入口
# ========================

def respond(activation_result, corpus, recent_utterance="", rng=None,
            emoji_rate=DEFAULT_EMOJI_RATE, search=None, reverse_lookup=True):
    """
    合成回答。

    参数:
        activation_result: dict - propagate_activation 的结果
        corpus: list[dict] - 训练对（被选中的训练对 usage_count 原地 +1）
        recent_utterance: str - 用户原话
        rng: np.random.Generator | None - 表情随机源
        emoji_rate: float - 模板回答附带表情的概率
        search: callable | None - 外部检索 fn(query) -> [{"title","content","url","relevance"}]
        reverse_lookup: bool - 是否先做反向查找（调用方已查过时传 False）
    返回:
        dict - {"response": str, "used_training": dict | None,
                "confidence": float, "source": "reverse"|"corpus"|"search"|"fallback"}
    """
    try:
        return _respond(activation_result, corpus, recent_utterance, rng,
                        emoji_rate, search, reverse_lookup)
    except Exception:
        logger.exception("回答合成失败，返回固定回答")
        return {"response": NO_INFO_MESSAGE, "used_training": None,
                "confidence": FALLBACK_MIN_CONFIDENCE, "source": "fallback"}


def _respond(activation_result, corpus, recent_utterance, rng, emoji_rate, search,
             reverse_lookup):
    propagation_confidence = activation_result.get("confidence", FALLBACK_MIN_CONFIDENCE)

    if reverse_lookup and recent_utterance:
        reverse = find_reverse_answer(recent_utterance, corpus)
        if reverse is not None:
            return {"response": reverse["response"], "used_training": None,
                    "confidence": reverse["confidence"], "source": "reverse"}

    pair, score = find_best_pair(corpus, activation_result.get("primary_concepts", []),
                                 recent_utterance)
    if pair is not None and score > CORPUS_MIN_SCORE:
        pair["usage_count"] = pair.get("usage_count", 0) + 1
        logger.debug("语料命中 %s (得分 %d)", pair.get("id"), score)
        return {
            "response": clean_corpus_output(pair),
            "used_training": dict(pair),
            "confidence": min(CORPUS_CONFIDENCE_CAP,
                              propagation_confidence + CORPUS_CONFIDENCE_BONUS),
            "source": "corpus",
        }

    if search is not None and recent_utterance:
        found = _search_answer(search, recent_utterance)
        if found is not None:
            return {"response": found["response"], "used_training": None,
                    "confidence": found["confidence"], "source": "search"}

    return {
        "response": synthesize_fallback(activation_result, recent_utterance, rng, emoji_rate),
        "used_training": None,
        "confidence": max(FALLBACK_MIN_CONFIDENCE, propagation_confidence),
        "source": "fallback",
    }
