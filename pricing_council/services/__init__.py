"""Services — AuditService, OntologyService, DecisionService."""

from pricing_council.services.audit_service import AuditService
from pricing_council.services.decision_service import DecisionService
from pricing_council.services.ontology_service import OntologyService

__all__ = ["AuditService", "DecisionService", "OntologyService"]
