"""
Company enrichment payloads (response models).

Field names follow the public API contract (French registry vocabulary).
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class Director(BaseModel):
    nom: str = ""
    prenoms: str = ""
    qualite: str = ""
    type: Literal["personne_physique", "personne_morale"]
    annee_naissance: str | None = None
    # Legal-entity directors only.
    siren: str | None = None
    denomination: str | None = None


class ControlChainLink(BaseModel):
    siren: str
    denomination: str = ""
    qualite: str = ""


class BeneficialOwner(BaseModel):
    nom: str = ""
    prenoms: str = ""
    qualite: str = ""
    annee_naissance: str | None = None
    chaine_controle: list[ControlChainLink] = Field(default_factory=list)


class Headquarters(BaseModel):
    adresse: str = ""
    code_postal: str = ""
    commune: str = ""
    latitude: str | None = None
    longitude: str | None = None


class CompanyEnrichment(BaseModel):
    siren: str
    nom_complet: str = ""
    nom_raison_sociale: str = ""
    sigle: str | None = None
    nature_juridique: str = ""
    date_creation: str = ""
    etat_administratif: str = ""
    categorie_entreprise: str = ""
    tranche_effectif: str = ""
    siege: Headquarters = Field(default_factory=Headquarters)
    dirigeants: list[Director] = Field(default_factory=list)
    beneficiaires_effectifs: list[BeneficialOwner] = Field(default_factory=list)
    nombre_etablissements: int = 0
