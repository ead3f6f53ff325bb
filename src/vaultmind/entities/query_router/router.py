"""Query type router.

Classifies a question into an analysis archetype in two phases:

1. Keyword scoring (always, no I/O). Covers the bulk of everyday phrasing
   in Chinese and English.
2. One constrained LLM classification, only when the keyword confidence is
   below the fallback threshold and a chat client is available.

Confidence bands: 0 (no match) < 0.6 (single keyword) < 0.75 (multiple
weak signals) < 0.9 (strong multi-keyword) <= 1.0 (keyword + domain term).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from vaultmind.entities.shared.errors import RunCancelledError
from vaultmind.entities.shared.llm_json import parse_json_object
from vaultmind.entities.shared.protocols import ChatCompletionClient
from vaultmind.models import QUERY_TYPES, QueryTypeClassification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouterThresholds:
    """Scoring weights and confidence bands for the router.

    Attributes:
        primary_weight: Score added per primary keyword hit.
        secondary_weight: Score added per secondary keyword hit.
        grouped_bonus: Extra score for ``kpi_grouped`` with both kinds of hit.
        strong_score: Score at or above which a match counts as strong.
        multi_score: Score at or above which a match has multiple signals.
        single_confidence: Confidence for a single weak match.
        multi_confidence: Confidence for multiple weak signals.
        strong_confidence: Confidence for a strong match without a domain term.
        domain_confidence: Confidence for a strong match with a domain term.
        llm_fallback: Keyword confidence below which the LLM phase runs.
        llm_default_confidence: Used when the LLM omits its confidence.
        llm_failure_confidence: Reported when the LLM phase fails.
        llm_temperature: Sampling temperature for the LLM phase.
        llm_max_tokens: Completion cap for the LLM phase.
        llm_schema_chars: Schema digest prefix sent to the LLM phase.
    """

    primary_weight: float = 2.0
    secondary_weight: float = 1.0
    grouped_bonus: float = 0.5
    strong_score: float = 4.0
    multi_score: float = 2.0
    single_confidence: float = 0.6
    multi_confidence: float = 0.75
    strong_confidence: float = 0.9
    domain_confidence: float = 1.0
    llm_fallback: float = 0.7
    llm_default_confidence: float = 0.7
    llm_failure_confidence: float = 0.3
    llm_temperature: float = 0.3
    llm_max_tokens: int = 150
    llm_schema_chars: int = 500


DEFAULT_THRESHOLDS = RouterThresholds()

# Rule order breaks score ties: earlier types win
KEYWORD_RULES: dict[str, dict[str, tuple[str, ...]]] = {
    "kpi_single": {
        "primary": ("总共", "总数", "总计", "一共", "多少个", "有几个", "数量", "count", "total", "统计"),
        "secondary": ("平均", "均值", "average", "avg", "mean"),
    },
    "kpi_grouped": {
        "primary": ("按照", "按", "分组", "每个", "各个", "group by", "by", "各"),
        "secondary": ("统计", "计算", "汇总", "sum", "平均", "数量"),
    },
    "trend_time": {
        "primary": (
            "趋势", "走势", "变化", "增长", "下降", "trend",
            "按天", "按周", "按月", "按年", "daily", "monthly",
        ),
        "secondary": ("时间", "日期", "历史", "time", "date", "over time"),
    },
    "distribution": {
        "primary": ("分布", "占比", "比例", "百分比", "distribution", "percentage", "proportion", "构成"),
        "secondary": ("各", "每个", "不同"),
    },
    "topn": {
        "primary": ("排名", "排行", "前", "top", "top n", "最多", "最少", "最高", "最低", "highest", "lowest"),
        "secondary": ("前n", "前十", "前5", "top 10", "top 5"),
    },
    "comparison": {
        "primary": ("对比", "比较", "差异", "compare", "vs", "versus", "相比", "比"),
        "secondary": ("和", "与", "and", "between"),
    },
}

# Business vocabulary that raises a keyword match to full confidence
DOMAIN_TERMS: tuple[str, ...] = (
    "订单", "用户", "商品", "销售额", "GMV", "客单价", "转化率", "复购",
    "order", "user", "product", "sales", "revenue", "conversion",
    "交易", "金额", "收入", "支出", "余额", "利润", "transaction", "amount", "profit",
    "数据", "记录", "条数", "data", "record", "count",
)

LLM_SYSTEM_PROMPT = """You are a query type classifier. Classify the user's query into ONE of these types:
- kpi_single: single value statistics (total, count, average)
- kpi_grouped: grouped aggregation (group by dimension)
- trend_time: time series trend (daily, monthly trends)
- distribution: distribution/percentage analysis
- topn: ranking/top N queries
- comparison: comparison between entities
- unknown: cannot classify

Return ONLY a JSON object with keys: queryType (string), confidence (0-1), reasoning (brief)."""


def _has_domain_term(lowered: str) -> bool:
    return any(term.lower() in lowered for term in DOMAIN_TERMS)


def classify_by_keywords(
    user_input: str,
    thresholds: RouterThresholds = DEFAULT_THRESHOLDS,
) -> QueryTypeClassification:
    """Classify a question by weighted keyword hits.

    Args:
        user_input: The user's question.
        thresholds: Scoring weights and confidence bands.

    Returns:
        The best-scoring archetype, or ``unknown`` at 0 when nothing matched.
    """
    lowered = user_input.lower()

    best_type = "unknown"
    best_score = 0.0
    best_keywords: list[str] = []

    for query_type, rules in KEYWORD_RULES.items():
        primary_hits = [kw for kw in rules["primary"] if kw.lower() in lowered]
        secondary_hits = [kw for kw in rules["secondary"] if kw.lower() in lowered]

        score = (
            len(primary_hits) * thresholds.primary_weight
            + len(secondary_hits) * thresholds.secondary_weight
        )
        if query_type == "kpi_grouped" and primary_hits and secondary_hits:
            score += thresholds.grouped_bonus

        if score > best_score:
            best_type = query_type
            best_score = score
            best_keywords = primary_hits + secondary_hits

    if best_score == 0:
        return QueryTypeClassification(query_type="unknown", confidence=0.0, method="keyword")

    has_domain_term = _has_domain_term(lowered)
    if best_score >= thresholds.strong_score or (
        best_score >= thresholds.multi_score and has_domain_term
    ):
        confidence = (
            thresholds.domain_confidence if has_domain_term else thresholds.strong_confidence
        )
    elif best_score >= thresholds.multi_score:
        confidence = thresholds.multi_confidence
    else:
        confidence = thresholds.single_confidence

    return QueryTypeClassification(
        query_type=best_type,
        confidence=confidence,
        matched_keywords=best_keywords,
        method="keyword",
    )


def _build_llm_user_prompt(user_input: str, schema_digest: str, limit: int) -> str:
    return (
        f'Classify this query:\n"{user_input}"\n\n'
        f"Schema context (first {limit} chars):\n{schema_digest[:limit]}\n\n"
        "Return JSON only."
    )


async def classify_by_llm(
    llm: ChatCompletionClient,
    user_input: str,
    schema_digest: str = "",
    thresholds: RouterThresholds = DEFAULT_THRESHOLDS,
) -> QueryTypeClassification:
    """Ask the model to pick an archetype from the closed set.

    Any failure (transport, empty content, unparseable JSON) yields
    ``unknown`` at the failure confidence so the keyword result wins.

    Args:
        llm: Chat completion client.
        user_input: The user's question.
        schema_digest: Schema context; only a short prefix is sent.
        thresholds: Supplies temperature, token cap and fallback values.

    Returns:
        An LLM-method classification.
    """
    messages = [
        {"role": "system", "content": LLM_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": _build_llm_user_prompt(
                user_input, schema_digest, thresholds.llm_schema_chars
            ),
        },
    ]
    try:
        reply = await llm.complete(
            messages,
            temperature=thresholds.llm_temperature,
            max_tokens=thresholds.llm_max_tokens,
        )
        content = reply.get("content")
        if not content:
            raise ValueError("Empty LLM response")
        parsed = parse_json_object(content)
        if parsed is None:
            raise ValueError("LLM response is not a JSON object")
    except RunCancelledError:
        raise
    except Exception as exc:
        logger.error("LLM query classification failed: %s", exc)
        return QueryTypeClassification(
            query_type="unknown",
            confidence=thresholds.llm_failure_confidence,
            matched_keywords=["LLM failed"],
            method="llm",
        )

    query_type = parsed.get("queryType")
    if query_type not in QUERY_TYPES:
        query_type = "unknown"

    raw_confidence = parsed.get("confidence")
    if isinstance(raw_confidence, (int, float)) and not isinstance(raw_confidence, bool):
        confidence = min(1.0, max(0.0, float(raw_confidence)))
    else:
        confidence = thresholds.llm_default_confidence

    reasoning = parsed.get("reasoning") or "classified"
    return QueryTypeClassification(
        query_type=query_type,
        confidence=confidence,
        matched_keywords=[f"LLM: {reasoning}"],
        method="llm",
    )


async def classify_query_type(
    user_input: str,
    llm: ChatCompletionClient | None = None,
    schema_digest: str = "",
    thresholds: RouterThresholds = DEFAULT_THRESHOLDS,
) -> QueryTypeClassification:
    """Classify a question, consulting the model only for low-confidence cases.

    Args:
        user_input: The user's question.
        llm: Optional chat client enabling the LLM phase.
        schema_digest: Schema context for the LLM phase.
        thresholds: Scoring weights and confidence bands.

    Returns:
        The keyword result, unless the LLM phase ran and is more confident.
    """
    keyword_result = classify_by_keywords(user_input, thresholds)
    logger.debug(
        "Keyword classification: %s (%.2f) %s",
        keyword_result.query_type,
        keyword_result.confidence,
        keyword_result.matched_keywords,
    )

    if keyword_result.confidence >= thresholds.llm_fallback or llm is None:
        return keyword_result

    logger.info("Low keyword confidence %.2f, falling back to LLM", keyword_result.confidence)
    llm_result = await classify_by_llm(llm, user_input, schema_digest, thresholds)
    logger.debug("LLM classification: %s (%.2f)", llm_result.query_type, llm_result.confidence)

    if llm_result.confidence > keyword_result.confidence:
        return llm_result
    return keyword_result
