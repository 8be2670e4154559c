"""Domain services."""

from storeagent.domain.services.intent_detector import IntentDetector, IntentResult, ToneResult

__all__ = ["IntentDetector", "IntentResult", "ToneResult"]
