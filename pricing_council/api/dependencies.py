"""
FastAPI dependencies.

One `Services` container per process wires the document store, the
repositories and the services together. Tests swap it out with
`app.dependency_overrides[get_services]`.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from pricing_council.config import get_settings
from pricing_council.persistence.document_store import DocumentStore, create_document_store
from pricing_council.rules.rules_config import RulesConfigStore
from pricing_council.services.audit_service import AuditService
from pricing_council.services.decision_service import DecisionService
from pricing_council.services.ontology_service import OntologyService


@dataclass
class Services:
    store: DocumentStore
    ontology: OntologyService
    decisions: DecisionService

    @property
    def audit(self) -> AuditService:
        return self.ontology.audit


def build_services(store: DocumentStore, rules: RulesConfigStore | None = None) -> Services:
    ontology = OntologyService(store, rules)
    return Services(
        store=store,
        ontology=ontology,
        decisions=DecisionService(store, ontology.snapshots),
    )


@lru_cache()
def get_services() -> Services:
    return build_services(create_document_store(get_settings()))


ServicesDep = Annotated[Services, Depends(get_services)]
