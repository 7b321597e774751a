"""
Owner aggregation.

Raw property rows are grouped in one pass:
- by owner key (siren, else denomination, else "inconnu")
- then, inside an owner, by normalized full address

A parcel seen twice at the same address is listed once, but every row still
counts as a lot.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from . import normalize
from .schemas import Address, CadastralReference, Coordinates, GroupedProperty, Owner, OwnerResult

UNKNOWN_OWNER = "inconnu"


@dataclass(frozen=True)
class PropertyRow:
    id: int | None = None
    departement: str = ""
    code_commune: str = ""
    nom_commune: str = ""
    prefixe_section: str = ""
    section: str = ""
    numero_plan: str = ""
    numero_voirie: str = ""
    nature_voie: str = ""
    nom_voie: str = ""
    adresse_complete: str = ""
    siren: str = ""
    denomination: str = ""
    forme_juridique: str = ""
    ban_type: str = ""
    lon: float | None = None
    lat: float | None = None
    distance: float | None = None

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "PropertyRow":
        def text(name: str) -> str:
            value = record.get(name)
            return "" if value is None else str(value).strip()

        def number(name: str) -> float | None:
            value = record.get(name)
            return None if value is None else float(value)

        raw_id = record.get("id")
        return cls(
            id=int(raw_id) if raw_id is not None else None,
            departement=text("departement"),
            code_commune=text("code_commune"),
            nom_commune=text("nom_commune"),
            prefixe_section=text("prefixe_section"),
            section=text("section"),
            numero_plan=text("numero_plan"),
            numero_voirie=text("numero_voirie"),
            nature_voie=text("nature_voie"),
            nom_voie=text("nom_voie"),
            adresse_complete=text("adresse_complete"),
            siren=text("siren"),
            denomination=text("denomination"),
            forme_juridique=text("forme_juridique"),
            ban_type=text("ban_type"),
            lon=number("lon"),
            lat=number("lat"),
            distance=number("distance"),
        )


def owner_key(row: PropertyRow) -> str:
    return row.siren or row.denomination or UNKNOWN_OWNER


def to_address(row: PropertyRow) -> Address:
    full = row.adresse_complete or normalize.format_full_address(
        row.numero_voirie,
        "",
        row.nature_voie,
        row.nom_voie,
        row.nom_commune,
        row.departement,
    )
    return Address(
        numero=row.numero_voirie,
        type_voie=normalize.decode_street_type(row.nature_voie),
        nom_voie=normalize.normalize_street_name(row.nom_voie),
        commune=row.nom_commune,
        departement=row.departement,
        adresse_complete=full,
    )


def to_reference(row: PropertyRow) -> CadastralReference:
    return CadastralReference(
        departement=row.departement,
        code_commune=row.code_commune,
        prefixe=row.prefixe_section or None,
        section=row.section,
        numero_plan=row.numero_plan,
        reference_complete=normalize.reference_complete(
            row.departement,
            row.code_commune,
            row.prefixe_section,
            row.section,
            row.numero_plan,
        ),
    )


def to_owner(row: PropertyRow) -> Owner:
    return Owner(
        siren=row.siren,
        denomination=row.denomination,
        forme_juridique=normalize.decode_legal_form(row.forme_juridique),
        forme_juridique_code=row.forme_juridique,
    )


@dataclass
class _AddressGroup:
    prop: GroupedProperty
    seen_references: set[str] = field(default_factory=set)


@dataclass
class _WorkingOwner:
    key: str
    owner: Owner
    groups: dict[str, _AddressGroup] = field(default_factory=dict)
    lots: int = 0
    coords: Coordinates | None = None
    distance: float | None = None
    departements: set[str] = field(default_factory=set)


class OwnerAggregator:
    def __init__(self) -> None:
        # dicts keep insertion order: owners come out in first-seen order.
        self._owners: dict[str, _WorkingOwner] = {}
        self.rows_seen = 0

    def add(self, row: PropertyRow) -> None:
        self.rows_seen += 1
        key = owner_key(row)

        working = self._owners.get(key)
        if working is None:
            working = _WorkingOwner(key=key, owner=to_owner(row))
            self._owners[key] = working

        address = to_address(row)
        group = working.groups.get(address.adresse_complete)
        if group is None:
            group = _AddressGroup(prop=GroupedProperty(adresse=address))
            working.groups[address.adresse_complete] = group

        reference = to_reference(row)
        ref_key = reference.reference_complete
        if ref_key and ref_key not in group.seen_references:
            group.seen_references.add(ref_key)
            group.prop.references_cadastrales.append(reference)
        group.prop.nombre_lots += 1

        working.lots += 1
        if working.coords is None and row.lat is not None and row.lon is not None:
            working.coords = Coordinates(lat=row.lat, lon=row.lon)
        if row.distance is not None and (working.distance is None or row.distance < working.distance):
            working.distance = row.distance
        if row.departement:
            working.departements.add(row.departement)

    def results(self) -> list[OwnerResult]:
        out: list[OwnerResult] = []
        for working in self._owners.values():
            properties = [g.prop for g in working.groups.values()]
            out.append(
                OwnerResult(
                    cle=working.key,
                    proprietaire=working.owner,
                    proprietes=properties,
                    nombre_adresses=len(properties),
                    nombre_lots=working.lots,
                    coordonnees=working.coords,
                    distance_metres=round(working.distance) if working.distance is not None else None,
                    departements_concernes=sorted(working.departements),
                )
            )
        return out


def aggregate(rows: list[PropertyRow]) -> list[OwnerResult]:
    aggregator = OwnerAggregator()
    for row in rows:
        aggregator.add(row)
    return aggregator.results()
