# -*- coding: utf-8 -*-
"""
土耳其语文本启发式工具
- 空白分词（小写）
- 归一化 Levenshtein 相似度（rapidfuzz）
- 词性类别 / 情感极性（关键词 + 后缀规则）
- 确定性伪随机语义向量（仅用于展示，不是真正的词向量）
- 疑问句类型识别 + 主语提取
- 模板化前缀清洗（"Bu konuyla ilgili bildiğim:" 等）
"""

import re

import numpy as np
from rapidfuzz.distance import Levenshtein

# ========================
# 词性类别关键词（子串匹配，按顺序检查）
# ========================
WORD_CATEGORIES = [
    ("isim", ["insan", "araba", "ev", "kitap", "bilgisayar", "telefon", "masa", "sandalye"]),
    ("fiil", ["gitmek", "gelmek", "yapmak", "etmek", "söylemek", "görmek", "duymak", "hissetmek"]),
    ("sıfat", ["güzel", "iyi", "kötü", "büyük", "küçük", "hızlı", "yavaş", "uzun", "kısa", "yüksek"]),
    ("zamir", ["ben", "sen", "o", "biz", "siz", "onlar", "bu", "şu", "kim", "ne", "kendi"]),
    ("bağlaç", ["ve", "veya", "ama", "fakat", "çünkü", "eğer", "ile", "ancak", "ya da"]),
    ("edat", ["için", "gibi", "kadar", "göre", "dolayı", "beri", "önce", "sonra", "rağmen"]),
    ("nicelik", ["bir", "iki", "üç", "az", "çok", "biraz", "fazla", "tüm", "hepsi", "her"]),
]

POSITIVE_WORDS = [
    "iyi", "güzel", "harika", "muhteşem", "sevmek", "başarı", "mutlu", "sevinç",
    "keyif", "huzur", "dostluk", "eğlence", "destek", "coşku", "heyecan",
]

NEGATIVE_WORDS = [
    "kötü", "çirkin", "berbat", "korkunç", "nefret", "başarısız", "mutsuz", "üzüntü",
    "acı", "kaygı", "endişe", "korku", "öfke", "sıkıntı", "stres", "tehlike",
]

# 主语兜底提取时过滤的疑问小品词
QUESTION_STOPWORDS = {"mi", "midir", "mudur", "mıdır", "müdür", "bir", "bu", "şu", "şey"}

# 系词后缀：已带系词的句子不再追加 "dir"
COPULA_SUFFIXES = ("dir", "dır", "dur", "dür", "tir", "tır", "tur", "tür")

# 句尾疑问词（反向回答时从训练输入末尾剥离）
TRAILING_QUESTION_WORDS = {
    "nedir", "neresidir", "neresi", "nerededir", "nerede", "kimdir", "kim",
    "ne", "mi", "mı", "mu", "mü", "midir", "mıdır", "mudur", "müdür",
}

SEMANTIC_VECTOR_DIMS = 5

_PUNCT_EDGES = ".,;:!?\"'()[]…"

RE_BOILERPLATE = [
    re.compile(r"Bu konuyla ilgili bildiğim[:]*\s*"),
    re.compile(r"Bu konuda bildiğim[:]*\s*"),
]
RE_WRAPPING_QUOTES = re.compile(r'^"(.+)"$', re.S)

# 土耳其语大小写: I <-> ı, İ <-> i（str.lower 会把 I 变成 i、İ 变成 "i̇"）
_TURKISH_LOWER = str.maketrans({"I": "ı", "İ": "i"})
_TURKISH_UPPER = str.maketrans({"i": "İ", "ı": "I"})


def fold(text):
    """
    土耳其语感知的小写化，所有大小写不敏感的比较 / 索引键都走这里。

    示例:
        fold("NASILSINIZ") -> "nasılsınız"
        fold("İSTANBUL")   -> "istanbul"
    """
    return text.translate(_TURKISH_LOWER).lower()


def tokenize(text):
    """小写后按空白切分，丢弃空串。"""
    if not text or not isinstance(text, str):
        return []
    return [w for w in fold(text).split() if w]


def strip_punctuation(word):
    """去掉词两端的标点（"nedir?" -> "nedir"）。"""
    return word.strip(_PUNCT_EDGES)


def word_similarity(a, b):
    """
    归一化 Levenshtein 相似度，大小写不敏感。

    公式: 1 - editDistance(a, b) / max(len(a), len(b))

    参数:
        a, b: str
    返回:
        float - 0~1，完全相同为 1.0，任一为空为 0.0；满足对称性
    """
    a = fold(a or "")
    b = fold(b or "")
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return float(Levenshtein.normalized_similarity(a, b))


def categorize_word(word):
    """
    粗粒度词性标签：关键词桶 -> 后缀规则 -> 长度兜底。

    返回:
        str - isim / fiil / sıfat / zamir / bağlaç / edat / nicelik
    """
    lower = fold(word)

    for category, examples in WORD_CATEGORIES:
        for example in examples:
            if example in lower:
                return category

    if lower.endswith(("lik", "lık", "luk", "lük")):
        return "isim"
    if lower.endswith(("mek", "mak")):
        return "fiil"
    if len(lower) > 3 and lower.endswith(("ci", "cı", "cu", "cü")):
        return "isim"

    return "bağlaç" if len(lower) <= 3 else "isim"


def calculate_sentiment(word):
    """关键词情感极性：命中正面词 0.5，命中负面词 -0.5，否则 0。"""
    lower = fold(word)
    if any(p in lower for p in POSITIVE_WORDS):
        return 0.5
    if any(n in lower for n in NEGATIVE_WORDS):
        return -0.5
    return 0.0


def semantic_vector(word, dims=SEMANTIC_VECTOR_DIMS):
    """
    由字符码之和作种子的确定性伪随机向量，每维落在 [-1, 1)。
    仅供可视化展示，不可当作语义嵌入使用。
    """
    seed = sum(ord(ch) for ch in word)
    x = np.sin(seed + np.arange(dims, dtype=np.float64)) * 10000.0
    frac = x - np.floor(x)
    return [round(float(v), 6) for v in frac * 2.0 - 1.0]


def _marker_index(words, marker):
    """返回 marker 在词列表中的位置；找不到时视为句尾词（返回 len-1）。"""
    if marker in words:
        return words.index(marker)
    for i, w in enumerate(words):
        if w.startswith(marker):
            return i
    return max(0, len(words) - 1)


def determine_question_type(question):
    """
    识别土耳其语疑问句类型并提取主语。

    检查顺序: what-is (nedir / ne demek / 句尾 ne) -> where-is (nerede / neresi)
              -> who-is (kim) -> how-to (nasıl) -> when-is (ne zaman)

    参数:
        question: str - 用户原话
    返回:
        dict - {"type": str, "subject": str}
    """
    lower = fold(question or "").strip()
    words = [strip_punctuation(w) for w in lower.split()]
    words = [w for w in words if w]
    bare = lower.rstrip(_PUNCT_EDGES + " ")

    qtype = "other"
    subject = ""

    if ("nedir" in lower or "ne demek" in lower
            or bare.endswith(" ne") or bare == "ne"):
        qtype = "what-is"
        if "nedir" in lower:
            subject = " ".join(words[:_marker_index(words, "nedir")])
        elif "ne demek" in lower:
            subject = " ".join(words[:_marker_index(words, "ne")])
        else:
            subject = " ".join(words[:-1])
    elif "nerede" in lower or "neresi" in lower:
        qtype = "where-is"
        if "nerede" in lower:
            subject = " ".join(words[:_marker_index(words, "nerede")])
        else:
            subject = " ".join(words[:_marker_index(words, "neresi")])
    elif "kim" in lower:
        qtype = "who-is"
        subject = " ".join(words[:_marker_index(words, "kim")])
    elif "nasıl" in lower:
        qtype = "how-to"
    elif "ne zaman" in lower:
        qtype = "when-is"

    if not subject and len(words) > 1:
        subject = " ".join(w for w in words if w not in QUESTION_STOPWORDS)

    return {"type": qtype, "subject": subject.strip()}


def strip_boilerplate(text):
    """反复剥离模板化引导语和首尾成对引号，直到文本不再变化。"""
    if not text:
        return ""
    prev = None
    while prev != text:
        prev = text
        for pattern in RE_BOILERPLATE:
            text = pattern.sub("", text)
        text = RE_WRAPPING_QUOTES.sub(r"\1", text).strip()
    return text


def strip_trailing_question(text):
    """去掉问号和句尾疑问词："Türkiye'nin başkenti neresidir?" -> "Türkiye'nin başkenti"。"""
    words = text.replace("?", " ").split()
    while words and fold(strip_punctuation(words[-1])) in TRAILING_QUESTION_WORDS:
        words.pop()
    return " ".join(words).rstrip(_PUNCT_EDGES + " ")


def ends_with_copula(text):
    """句子末词是否已带系词后缀（-dir/-dır/-tir ...）。"""
    words = text.split()
    if not words:
        return False
    return fold(strip_punctuation(words[-1])).endswith(COPULA_SUFFIXES)


def capitalize_first(text):
    """仅把首字母大写，其余保持原样。"""
    if not text:
        return text
    return text[0].translate(_TURKISH_UPPER).upper() + text[1:]


def ensure_terminal_punctuation(text):
    """结尾没有 . ! ? 时补一个句号。"""
    if text and not text.endswith((".", "!", "?")):
        return text + "."
    return text
