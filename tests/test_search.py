"""
Address, siren and owner-name lookups.
"""

from unittest.mock import AsyncMock

import pytest

from cadastre import repository as geo_repository
from conftest import FakeEnricher
from search import repository, service


@pytest.mark.parametrize(
    "address, number, street",
    [
        ("5 rue de Bruxelles", "0005", "de bruxelles"),
        ("12bis Avenue Foch", "0012", "foch"),
        ("7 ter bd Haussmann", "0007", "haussmann"),
        ("Rue de l'Église", None, "de l eglise"),
        ("quai", None, ""),
    ],
)
def test_extract_address_parts(address, number, street):
    assert service.extract_address_parts(address) == service.AddressParts(number=number, street=street)


@pytest.mark.parametrize(
    "postal_code, expected",
    [
        ("75009", ("75", "PARIS 09")),
        ("75020", ("75", "PARIS 20")),
        ("69001", ("69", "LYON 1ER")),
        ("13013", ("13", "MARSEILLE 13EME")),
        ("13017", ("13", None)),
        ("33000", ("33", None)),
        ("75", ("75", None)),
    ],
)
def test_postal_code_filter(postal_code, expected):
    assert service.postal_code_filter(postal_code) == expected


def test_address_filter_matches_padded_and_unpadded_numbers():
    row_filter = repository.address_filter("%de%bruxelles%", number="0005", departement="75", commune="PARIS 09")

    assert row_filter.args == ("%de%bruxelles%", "0005", "5", "75", "PARIS 09")
    assert "LTRIM(p.numero_voirie, '0') = $3" in row_filter.predicate
    assert "p.departement = $4" in row_filter.predicate
    assert "UPPER(p.nom_commune) = $5" in row_filter.predicate


def test_owner_filters_compare_trimmed_columns():
    assert repository.siren_filter("123456789", departement="75").predicate == (
        "BTRIM(p.siren) = $1 AND p.departement = $2"
    )
    assert "BTRIM(p.denomination)" in repository.denomination_filter("%acme%").predicate


@pytest.fixture
def rows_for(monkeypatch):
    mock = AsyncMock(return_value=[])
    monkeypatch.setattr(geo_repository, "rows_for", mock)
    return mock


@pytest.mark.asyncio
async def test_address_search_uses_postal_code_and_enriches(rows_for, make_row, company):
    rows_for.return_value = [make_row(siren="123456789"), make_row(siren="123456789", numero_voirie="0007")]
    enricher = FakeEnricher({"123456789": company("123456789")})

    result = await service.search_address("5 rue de Bruxelles", postal_code="75009", limit=20, enricher=enricher)

    row_filter, cap = rows_for.await_args.args
    assert cap == 20
    assert row_filter.args == ("%de%bruxelles%", "0005", "5", "75", "PARIS 09")
    assert result["total_proprietaires"] == 1
    assert result["total_lots"] == 2
    assert result["enrichis"] == 1
    assert result["debug"]["commune"] == "PARIS 09"
    assert result["proprietaires"][0]["entreprise"]["siren"] == "123456789"


@pytest.mark.asyncio
async def test_address_with_too_short_street_skips_store(rows_for):
    result = await service.search_address("5 rue", enricher=FakeEnricher())

    assert result["proprietaires"] == []
    rows_for.assert_not_awaited()


@pytest.mark.asyncio
async def test_siren_search_fetches_a_single_owner(rows_for, make_row):
    rows_for.return_value = [
        make_row(siren="123456789", departement="75"),
        make_row(siren="123456789", departement="92", nom_commune="NANTERRE"),
    ]

    result = await service.search_siren(" 123456789 ", enricher=FakeEnricher())

    row_filter, cap = rows_for.await_args.args
    assert row_filter.args == ("123456789",)
    assert cap == 1
    assert result["proprietaires"][0]["departements_concernes"] == ["75", "92"]


@pytest.mark.asyncio
async def test_siren_search_rejects_malformed_siren(rows_for):
    with pytest.raises(ValueError):
        await service.search_siren("12345", enricher=FakeEnricher())
    rows_for.assert_not_awaited()


@pytest.mark.asyncio
async def test_owner_search_builds_accent_free_pattern(rows_for, monkeypatch):
    monkeypatch.setenv("SEARCH_MAX_LIMIT", "50")

    await service.search_owner("Société Générale d'Immobilier", departement="75", limit=500, enricher=FakeEnricher())

    row_filter, cap = rows_for.await_args.args
    assert row_filter.args == ("%societe%generale%immobilier%", "75")
    assert cap == 50


@pytest.mark.asyncio
async def test_owner_search_without_usable_terms_is_empty(rows_for):
    result = await service.search_owner("a b", enricher=FakeEnricher())

    assert result["total_proprietaires"] == 0
    rows_for.assert_not_awaited()
