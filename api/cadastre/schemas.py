"""
Cadastre API schemas (response models).
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from registry.schemas import CompanyEnrichment


class Address(BaseModel):
    numero: str = ""
    type_voie: str = ""
    nom_voie: str = ""
    commune: str = ""
    departement: str = ""
    adresse_complete: str = ""


class CadastralReference(BaseModel):
    departement: str = ""
    code_commune: str = ""
    prefixe: str | None = None
    section: str = ""
    numero_plan: str = ""
    reference_complete: str = ""


class Owner(BaseModel):
    siren: str = ""
    denomination: str = ""
    forme_juridique: str = ""
    forme_juridique_code: str = ""


class Coordinates(BaseModel):
    lat: float
    lon: float


class GroupedProperty(BaseModel):
    adresse: Address
    references_cadastrales: list[CadastralReference] = Field(default_factory=list)
    nombre_lots: int = 0


class OwnerResult(BaseModel):
    # Grouping key; internal, never serialized.
    cle: str = Field(exclude=True)
    proprietaire: Owner
    proprietes: list[GroupedProperty] = Field(default_factory=list)
    entreprise: CompanyEnrichment | None = None
    nombre_adresses: int = 0
    nombre_lots: int = 0
    coordonnees: Coordinates | None = None
    distance_metres: int | None = None
    departements_concernes: list[str] = Field(default_factory=list)


class AppliedLimits(BaseModel):
    max_resultats: int
    max_enrichissement: int | None


class GeoSearchResult(BaseModel):
    etat: str
    raison: str | None = None
    proprietaires: list[OwnerResult] = Field(default_factory=list)
    total_proprietaires: int = 0
    total_dans_zone: int = 0
    total_lignes_zone: int = 0
    total_lots: int = 0
    enrichis: int = 0
    limites_appliquees: AppliedLimits
    debug: dict = Field(default_factory=dict)
