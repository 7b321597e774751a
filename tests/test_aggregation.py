"""
Grouping rows into owners and addresses.
"""

from cadastre.aggregation import UNKNOWN_OWNER, OwnerAggregator, PropertyRow, aggregate, owner_key


def test_owner_key_prefers_siren_then_denomination(make_row):
    assert owner_key(make_row(siren="123456789", denomination="ACME")) == "123456789"
    assert owner_key(make_row(siren="", denomination="ACME")) == "ACME"
    assert owner_key(make_row(siren="", denomination="")) == UNKNOWN_OWNER


def test_rows_with_same_key_merge_and_distinct_keys_never_do(make_row):
    rows = [
        make_row(siren="111111111", denomination="A", nom_commune="PARIS 09"),
        make_row(siren="222222222", denomination="A"),
        make_row(siren="111111111", denomination="A (ancien nom)", departement="92", nom_commune="NANTERRE"),
        make_row(siren="", denomination="B"),
        make_row(siren="", denomination="B"),
    ]

    owners = aggregate(rows)

    assert [o.cle for o in owners] == ["111111111", "222222222", "B"]
    assert owners[0].nombre_lots == 2
    assert owners[0].departements_concernes == ["75", "92"]
    assert owners[2].nombre_lots == 2


def test_same_parcel_twice_is_listed_once_but_counted_twice(make_row):
    aggregator = OwnerAggregator()
    row = make_row(siren="123456789", numero_plan="0042")
    aggregator.add(row)
    aggregator.add(row)

    [owner] = aggregator.results()
    [prop] = owner.proprietes

    assert len(prop.references_cadastrales) == 1
    assert prop.references_cadastrales[0].reference_complete == "75-109-AB-0042"
    assert prop.nombre_lots == 2
    assert owner.nombre_lots == 2


def test_rows_group_by_normalized_address(make_row):
    rows = [
        make_row(siren="123456789", numero_voirie="0005", nom_voie="DE BRUXELLES"),
        make_row(siren="123456789", numero_voirie="5", nom_voie="de bruxelles"),
        make_row(siren="123456789", numero_voirie="0007", nom_voie="DE BRUXELLES"),
    ]

    [owner] = aggregate(rows)

    assert owner.nombre_adresses == 2
    assert owner.proprietes[0].adresse.adresse_complete == "5 Rue De Bruxelles - PARIS 09 75"
    assert owner.proprietes[0].nombre_lots == 2
    assert len(owner.proprietes[0].references_cadastrales) == 2


def test_unknown_owner_sentinel(make_row):
    [owner] = aggregate([make_row(siren="", denomination=""), make_row(siren="", denomination="")])

    assert owner.cle == UNKNOWN_OWNER
    assert owner.proprietaire.siren == ""
    assert owner.nombre_lots == 2


def test_owner_fields_are_decoded_and_key_is_not_serialized(make_row):
    [owner] = aggregate([make_row(siren="123456789", denomination="ACME", forme_juridique="SCI")])

    payload = owner.model_dump(mode="json")

    assert "cle" not in payload
    assert payload["proprietaire"]["forme_juridique"] == "Société Civile Immobilière"
    assert payload["proprietaire"]["forme_juridique_code"] == "SCI"
    assert payload["coordonnees"] == {"lat": 48.88, "lon": 2.33}


def test_nearest_distance_is_kept(make_row):
    [owner] = aggregate(
        [
            make_row(siren="123456789", distance=120.4),
            make_row(siren="123456789", distance=35.6, numero_voirie="0009"),
        ]
    )

    assert owner.distance_metres == 36


def test_from_record_strips_and_tolerates_nulls():
    row = PropertyRow.from_record(
        {"id": 7, "siren": " 123456789 ", "denomination": None, "lon": "2.5", "lat": None}
    )

    assert row.id == 7
    assert row.siren == "123456789"
    assert row.denomination == ""
    assert row.lon == 2.5
    assert row.lat is None
