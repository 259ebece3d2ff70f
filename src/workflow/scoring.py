"""リスクスコアリング — 発生可能性 × 影響度 → 評点・バンド"""

from dataclasses import dataclass

from src.config.constants import BAND_LOW_MAX, BAND_MEDIUM_MAX, IMPACT_RANGE, LIKELIHOOD_RANGE, RiskBand
from src.workflow.errors import ValidationError


@dataclass(frozen=True)
class RiskScore:
    rating: int
    band: RiskBand


def band_for(rating: int) -> RiskBand:
    """評点からバンドを判定（1-6 Low / 7-14 Medium / 15-25 High）"""
    if rating <= BAND_LOW_MAX:
        return RiskBand.LOW
    if rating <= BAND_MEDIUM_MAX:
        return RiskBand.MEDIUM
    return RiskBand.HIGH


def _check_range(name: str, value: int, bounds: tuple[int, int]) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name}は整数で指定してください")
    low, high = bounds
    if not low <= value <= high:
        raise ValidationError(f"{name}は{low}〜{high}で指定してください: {value}")
    return value


def score(likelihood: int, impact: int) -> RiskScore:
    """評点とバンドを算出

    固有リスク（リスク評価）と課題重要度（監査手続）の双方に同じ規則を適用する。

    Raises:
        ValidationError: 1〜5の範囲外
    """
    likelihood = _check_range("発生可能性", likelihood, LIKELIHOOD_RANGE)
    impact = _check_range("影響度", impact, IMPACT_RANGE)
    rating = likelihood * impact
    return RiskScore(rating=rating, band=band_for(rating))


def score_optional(likelihood: int | None, impact: int | None) -> RiskScore | None:
    """両方揃っている場合のみ採点する"""
    if likelihood is None or impact is None:
        return None
    return score(likelihood, impact)


# 重大度順（報告書の並び順）
BAND_SEVERITY: dict[str, int] = {RiskBand.HIGH: 0, RiskBand.MEDIUM: 1, RiskBand.LOW: 2}
