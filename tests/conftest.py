from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
API_DIR = PROJECT_ROOT / "api"
if str(API_DIR) not in sys.path:
    sys.path.insert(0, str(API_DIR))

from cadastre.aggregation import PropertyRow  # noqa: E402
from registry.schemas import CompanyEnrichment  # noqa: E402


class FakeEnricher:
    """Records every siren it is asked about; answers from a fixed table."""

    def __init__(self, known: dict[str, CompanyEnrichment] | None = None) -> None:
        self.known = known or {}
        self.calls: list[str] = []

    async def enrich(self, siren: str) -> CompanyEnrichment | None:
        self.calls.append(siren)
        return self.known.get(siren)


@pytest.fixture
def make_row():
    counter = {"id": 0}

    def _make(**fields: Any) -> PropertyRow:
        counter["id"] += 1
        values: dict[str, Any] = {
            "id": counter["id"],
            "departement": "75",
            "code_commune": "109",
            "nom_commune": "PARIS 09",
            "section": "AB",
            "numero_plan": f"{counter['id']:04d}",
            "numero_voirie": "0005",
            "nature_voie": "RUE",
            "nom_voie": "DE BRUXELLES",
            "lon": 2.33,
            "lat": 48.88,
        }
        values.update(fields)
        return PropertyRow(**values)

    return _make


@pytest.fixture
def fake_enricher():
    return FakeEnricher()


@pytest.fixture
def company():
    def _company(siren: str, name: str = "ACME") -> CompanyEnrichment:
        return CompanyEnrichment(siren=siren, nom_complet=name)

    return _company
