"""Text normalization for deterministic KB retrieval.

Folding, tokenization and synonym canonicalization are explicit constant
tables so that golden-set outcomes only move when the tables are edited.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Dict, FrozenSet, List

_WORD_SPLIT_RE = re.compile(r"[\s,;:.!?¿¡()\[\]{}\"'’`«»/\\]+")
_WHITESPACE_RE = re.compile(r"\s+")

STOPWORDS: FrozenSet[str] = frozenset(
    {
        # ca
        "com", "que", "quin", "quina", "quins", "quines", "de", "del", "dels", "la", "el",
        "els", "les", "un", "una", "uns", "unes", "al", "als", "a", "i", "o", "en", "per",
        "amb", "sense", "es", "mes", "entre", "dun", "sobre", "fer", "faig", "vull", "tinc",
        "puc", "meu", "meva", "aquest", "aquesta",
        # es
        "como", "cual", "los", "las", "unos", "unas", "y", "por", "con", "sin", "hacer",
        "hago", "quiero", "tengo", "puedo", "mis", "este", "esta", "para",
    }
)

# Variant -> canonical token. Keys and values are folded (no accents).
SYNONYMS: Dict[str, str] = {
    # fees / receipts
    "rebut": "quota",
    "rebuts": "quota",
    "recibo": "quota",
    "recibos": "quota",
    "cuota": "quota",
    "cuotas": "quota",
    "quotes": "quota",
    # remittances
    "remessa": "remesa",
    "remeses": "remesa",
    "remesas": "remesa",
    "remessas": "remesa",
    # expense allocation
    "imputo": "imputar",
    "imputa": "imputar",
    "imputacio": "imputar",
    "imputacion": "imputar",
    "assignar": "imputar",
    "asignar": "imputar",
    "despeses": "despesa",
    "gasto": "despesa",
    "gastos": "despesa",
    "projectes": "projecte",
    "proyecto": "projecte",
    "proyectos": "projecte",
    # documents
    "pujo": "pujar",
    "puja": "pujar",
    "subo": "pujar",
    "subir": "pujar",
    "adjunto": "adjuntar",
    "adjunta": "adjuntar",
    "factures": "factura",
    "facturas": "factura",
    "nomines": "nomina",
    "nominas": "nomina",
    # splitting
    "divideixo": "dividir",
    "divido": "dividir",
    "fraccionar": "dividir",
    "fracciono": "dividir",
    "separar": "dividir",
    # donors / certificates
    "donatius": "donatiu",
    "donacio": "donatiu",
    "donacions": "donatiu",
    "donacion": "donatiu",
    "donaciones": "donatiu",
    "certificado": "certificat",
    "certificados": "certificat",
    "certificats": "certificat",
    "socis": "soci",
    "socio": "soci",
    "socios": "soci",
    # destructive actions
    "esborrar": "eliminar",
    "esborro": "eliminar",
    "borrar": "eliminar",
    "borro": "eliminar",
    "elimino": "eliminar",
}


def normalize_plain(text: str) -> str:
    """Lower-case, strip diacritics and collapse whitespace."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _WHITESPACE_RE.sub(" ", stripped).strip()


def words(text: str) -> List[str]:
    """Folded words of `text`, punctuation removed, stop words kept."""
    return [w for w in _WORD_SPLIT_RE.split(normalize_plain(text)) if w]


def canonical_token(token: str) -> str:
    return SYNONYMS.get(token, token)


def canonical_phrase(text: str) -> str:
    return " ".join(canonical_token(w) for w in words(text))


def searchable_phrase(text: str) -> str:
    return " ".join(words(text))


def _singular_forms(token: str) -> List[str]:
    # Naive on purpose: golden-set thresholds were tuned with this behaviour.
    forms: List[str] = []
    if token.endswith("es") and len(token) > 5:
        forms.append(token[:-1])
        forms.append(token[:-2])
    elif token.endswith("s") and len(token) > 3:
        forms.append(token[:-1])
    return forms


def _is_content_token(token: str) -> bool:
    return len(token) > 2 and token not in STOPWORDS


def normalize(text: str) -> List[str]:
    """Ordered, de-duplicated canonical tokens of `text`."""
    tokens: Dict[str, None] = {}
    for word in words(text):
        if not _is_content_token(word):
            continue
        tokens[word] = None
        canonical = canonical_token(word)
        if canonical != word:
            tokens[canonical] = None
        for form in _singular_forms(word):
            if _is_content_token(form):
                tokens[form] = None
    return list(tokens)
