"""Runtime layer: per-session state, batching and delivery results.

Les modules exposent des primitives testables consommées par la session
(``session.SessionContext``), seule frontière publique vers l'appelant.
"""

from .models import DeliveryEnvelope, DeliveryResult, ExtractionResult, KpiSnapshot, Record

__all__ = ["Record", "KpiSnapshot", "ExtractionResult", "DeliveryEnvelope", "DeliveryResult"]
