"""
Decoding and normalization of MAJIC property fields.

- street type codes (nature_voie) -> labels
- legal form abbreviations -> labels
- street names -> accent-free French title case
- full address and cadastral reference strings used as grouping keys
"""

from __future__ import annotations

import re
import unicodedata

STREET_TYPES: dict[str, str] = {
    "ALL": "Allée",
    "AV": "Avenue",
    "BD": "Boulevard",
    "CAR": "Carrefour",
    "CHE": "Chemin",
    "CHS": "Chaussée",
    "CITE": "Cité",
    "COR": "Corniche",
    "CRS": "Cours",
    "DOM": "Domaine",
    "DSC": "Descente",
    "ECA": "Écart",
    "ESP": "Esplanade",
    "FG": "Faubourg",
    "GR": "Grande Rue",
    "HAM": "Hameau",
    "HLE": "Halle",
    "IMP": "Impasse",
    "LD": "Lieu-dit",
    "LOT": "Lotissement",
    "MAR": "Marché",
    "MTE": "Montée",
    "PAS": "Passage",
    "PL": "Place",
    "PLN": "Plaine",
    "PLT": "Plateau",
    "PRO": "Promenade",
    "PRV": "Parvis",
    "QUA": "Quartier",
    "QUAI": "Quai",
    "RES": "Résidence",
    "RLE": "Ruelle",
    "ROC": "Rocade",
    "RPT": "Rond-point",
    "RTE": "Route",
    "RUE": "Rue",
    "SEN": "Sente",
    "SQ": "Square",
    "TPL": "Terre-plein",
    "TRA": "Traverse",
    "VLA": "Villa",
    "VLGE": "Village",
    "VOI": "Voie",
    "ZA": "Zone d'Activité",
    "ZAC": "Zone d'Aménagement Concerté",
    "ZAD": "Zone d'Aménagement Différé",
    "ZI": "Zone Industrielle",
    "ZUP": "Zone à Urbaniser en Priorité",
}

LEGAL_FORMS: dict[str, str] = {
    "EI": "Entrepreneur Individuel",
    "EIRL": "Entrepreneur Individuel à Responsabilité Limitée",
    "SA": "Société Anonyme",
    "SAS": "Société par Actions Simplifiée",
    "SASU": "Société par Actions Simplifiée Unipersonnelle",
    "SARL": "Société à Responsabilité Limitée",
    "EURL": "Entreprise Unipersonnelle à Responsabilité Limitée",
    "SNC": "Société en Nom Collectif",
    "SCS": "Société en Commandite Simple",
    "SCA": "Société en Commandite par Actions",
    "SE": "Société Européenne",
    "SCI": "Société Civile Immobilière",
    "SCPI": "Société Civile de Placement Immobilier",
    "SCP": "Société Civile Professionnelle",
    "SCM": "Société Civile de Moyens",
    "SC": "Société Civile",
    "SCEA": "Société Civile d'Exploitation Agricole",
    "GAEC": "Groupement Agricole d'Exploitation en Commun",
    "EARL": "Exploitation Agricole à Responsabilité Limitée",
    "SCOP": "Société Coopérative et Participative",
    "SCIC": "Société Coopérative d'Intérêt Collectif",
    "COOP": "Coopérative",
    "ASSO": "Association",
    "FOND": "Fondation",
    "EPIC": "Établissement Public Industriel et Commercial",
    "EPA": "Établissement Public Administratif",
    "EPCI": "Établissement Public de Coopération Intercommunale",
    "SEM": "Société d'Économie Mixte",
    "SPL": "Société Publique Locale",
    "GIP": "Groupement d'Intérêt Public",
    "GIE": "Groupement d'Intérêt Économique",
    "SEL": "Société d'Exercice Libéral",
    "SELARL": "Société d'Exercice Libéral à Responsabilité Limitée",
    "SELAS": "Société d'Exercice Libéral par Actions Simplifiée",
    "SEP": "Société en Participation",
    "INDIV": "Indivision",
    "COPRO": "Copropriété",
    "SYND": "Syndicat",
}

# Articles and prepositions kept lowercase inside street names.
LOWERCASE_WORDS = {"de", "du", "des", "la", "le", "les", "l", "a", "au", "aux", "en", "et", "d", "sur", "sous"}

_WORD_SPLIT_RE = re.compile(r"(\s+|-|')")
_EMPTY_NUMBERS = {"", "0", "00000"}


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text or "")
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def decode_street_type(code: str | None) -> str:
    if not code:
        return ""
    normalized = code.strip().upper()
    return STREET_TYPES.get(normalized, normalized)


def decode_legal_form(code: str | None) -> str:
    if not code:
        return ""
    normalized = code.strip().upper()
    return LEGAL_FORMS.get(normalized, normalized)


def _capitalize(word: str) -> str:
    return word[:1].upper() + word[1:].lower()


def normalize_street_name(name: str | None) -> str:
    """
    "RUE DE LA PAIX" style MAJIC names -> "Rue de la Paix".

    Accents are stripped first so the same street always yields the same key.
    """
    text = strip_accents((name or "").strip()).lower()
    if not text:
        return ""

    parts = _WORD_SPLIT_RE.split(text)
    out: list[str] = []
    for index, part in enumerate(parts):
        if index == 0:
            out.append(_capitalize(part))
        elif part in LOWERCASE_WORDS:
            out.append(part)
        else:
            out.append(_capitalize(part))
    return "".join(out)


def format_street_number(number: str | None, repetition: str | None = None) -> str:
    raw = (number or "").strip()
    if raw in _EMPTY_NUMBERS:
        return ""
    raw = raw.lstrip("0")
    if not raw:
        return ""
    if repetition:
        raw = f"{raw} {repetition.strip().lower()}"
    return raw


def format_full_address(
    number: str | None,
    repetition: str | None,
    street_type: str | None,
    street_name: str | None,
    commune: str | None,
    departement: str | None,
) -> str:
    """
    "5 Rue de Bruxelles - PARIS 09 75" from raw MAJIC parts.
    """
    parts: list[str] = []

    numero = format_street_number(number, repetition)
    if numero:
        parts.append(numero)

    decoded_type = decode_street_type(street_type)
    if decoded_type:
        parts.append(decoded_type)

    name = normalize_street_name(street_name)
    if name:
        parts.append(name)

    location = " ".join(p for p in ((commune or "").strip(), (departement or "").strip()) if p)
    if location:
        parts.append(f"- {location}")

    return " ".join(parts)


def reference_complete(
    departement: str | None,
    code_commune: str | None,
    prefixe: str | None,
    section: str | None,
    numero_plan: str | None,
) -> str:
    """
    Dedup key for a parcel: non-empty parts joined with "-".
    """
    parts = (departement, code_commune, prefixe, section, numero_plan)
    return "-".join(p.strip() for p in parts if p and p.strip())
