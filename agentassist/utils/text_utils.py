"""
AgentAssist - 文字處理工具模組
提供知識庫切割與向量比對使用的共用函式。
"""

import math
from typing import List, Sequence


def chunk_text(text: str, size: int, overlap: int) -> List[str]:
    """
    將文字切割為固定長度、彼此重疊的片段。

    第 i 個片段從 i * (size - overlap) 開始，最後一個片段可能較短。

    Args:
        text (str): 原始文字。
        size (int): 每個片段的長度 S。
        overlap (int): 相鄰片段的重疊長度 O，必須滿足 0 <= O < S。

    Returns:
        List[str]: 片段列表；空字串回傳空列表。

    Raises:
        ValueError: 如果 size 或 overlap 不合法。
    """
    if size <= 0:
        raise ValueError(f"片段長度必須大於 0: {size}")
    if not 0 <= overlap < size:
        raise ValueError(f"重疊長度必須介於 0 與 {size} 之間: {overlap}")

    chunks = []
    step = size - overlap
    start = 0
    while start < len(text):
        end = min(start + size, len(text))
        chunks.append(text[start:end])
        if end == len(text):
            break
        start += step
    return chunks


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """
    計算兩個向量的餘弦相似度，結果介於 -1 與 1 之間。
    任一向量長度為零時回傳 0。

    Raises:
        ValueError: 如果兩個向量維度不同。
    """
    if len(vec_a) != len(vec_b):
        raise ValueError(f"向量維度不一致: {len(vec_a)} != {len(vec_b)}")

    dot_product = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for a, b in zip(vec_a, vec_b):
        dot_product += a * b
        norm_a += a * a
        norm_b += b * b

    if norm_a == 0 or norm_b == 0:
        return 0.0
    score = dot_product / (math.sqrt(norm_a) * math.sqrt(norm_b))
    # 浮點誤差可能讓結果略微超出範圍
    return max(-1.0, min(1.0, score))


def is_zero_vector(vector: Sequence[float]) -> bool:
    return not any(vector)
