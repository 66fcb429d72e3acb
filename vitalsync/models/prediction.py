from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class PredictionEntry:
    risk_level: str
    risk_score: float
    confidence: float
    recommendations: List[str] = field(default_factory=list)
    predicted_at: Optional[str] = None
    last_updated: Optional[datetime] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> 'PredictionEntry':
        """
        Build an entry from a remote prediction response.

        The risk service has answered with the prediction at the top level,
        under ``prediction`` or under ``prediction_details``, in camelCase or
        snake_case. Missing values fall back to "Unknown"/0.
        """
        data = payload.get('prediction_details') or payload.get('prediction') or payload
        if not isinstance(data, dict):
            data = {}

        recommendations = data.get('recommendations')
        return cls(
            risk_level=data.get('riskLevel') or data.get('risk_level') or 'Unknown',
            risk_score=_number(data.get('riskScore', data.get('risk_score'))),
            confidence=_number(data.get('confidence')),
            recommendations=[str(r) for r in recommendations] if isinstance(recommendations, list) else [],
            predicted_at=data.get('predictedAt') or data.get('predicted_at'),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PredictionEntry':
        entry = cls.from_payload(data)
        last_updated = data.get('lastUpdated')
        if isinstance(last_updated, str):
            try:
                parsed = datetime.fromisoformat(last_updated.replace('Z', '+00:00'))
            except ValueError:
                parsed = None
            if parsed is not None and parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            entry = replace(entry, last_updated=parsed)
        return entry

    def stamped(self, now: datetime) -> 'PredictionEntry':
        """Copy with ``last_updated`` set to ``now`` and ``predicted_at`` filled if missing."""
        return replace(
            self,
            predicted_at=self.predicted_at or now.isoformat(),
            last_updated=now,
        )

    def to_dict(self) -> dict:
        return {
            "riskLevel": self.risk_level,
            "riskScore": self.risk_score,
            "confidence": self.confidence,
            "recommendations": list(self.recommendations),
            "predictedAt": self.predicted_at,
            "lastUpdated": self.last_updated.isoformat() if self.last_updated else None,
        }


def _number(value: Any) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0
