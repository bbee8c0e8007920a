"""
Normalization engine.

Applied to merged fields before derived attributes are filled in:
    - make canonicalisation (known-make table, title-case fallback)
    - manufacturer model/variant splitting via a rule registry
    - body type, fuel type, transmission and colour canonical forms
    - display title synthesis
    - mild-hybrid and plug-in-hybrid heuristics

Usage:
    from vrm_resolver.normalize import normalize_profile
    result = normalize_profile({"make": "VOLKSWAGEN", "model": "Golf GTE"},
                               {"make": "registry", "model": "registry"})
    result.values["model"]    # "Golf"
    result.values["variant"]  # "GTE"
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Makes
# ---------------------------------------------------------------------------

KNOWN_MAKES: Dict[str, str] = {
    "abarth": "Abarth",
    "alfa romeo": "Alfa Romeo",
    "alfa-romeo": "Alfa Romeo",
    "aston martin": "Aston Martin",
    "aston-martin": "Aston Martin",
    "audi": "Audi",
    "bentley": "Bentley",
    "bmw": "BMW",
    "byd": "BYD",
    "citroen": "Citroen",
    "cupra": "CUPRA",
    "dacia": "Dacia",
    "ds": "DS AUTOMOBILES",
    "ds automobiles": "DS AUTOMOBILES",
    "fiat": "Fiat",
    "ford": "Ford",
    "honda": "Honda",
    "hyundai": "Hyundai",
    "jaguar": "Jaguar",
    "jeep": "Jeep",
    "kia": "Kia",
    "land rover": "Land Rover",
    "land-rover": "Land Rover",
    "landrover": "Land Rover",
    "ldv": "LDV",
    "levc": "LEVC",
    "lexus": "Lexus",
    "mazda": "Mazda",
    "mclaren": "McLaren",
    "mercedes": "Mercedes-Benz",
    "mercedes-benz": "Mercedes-Benz",
    "mercedes benz": "Mercedes-Benz",
    "mg": "MG",
    "mini": "MINI",
    "mitsubishi": "Mitsubishi",
    "nissan": "Nissan",
    "peugeot": "Peugeot",
    "polestar": "Polestar",
    "porsche": "Porsche",
    "renault": "Renault",
    "seat": "SEAT",
    "skoda": "Skoda",
    "smart": "smart",
    "subaru": "Subaru",
    "suzuki": "Suzuki",
    "tesla": "Tesla",
    "toyota": "Toyota",
    "vauxhall": "Vauxhall",
    "volkswagen": "Volkswagen",
    "vw": "Volkswagen",
    "volvo": "Volvo",
}


def normalize_make(make: Optional[str]) -> Optional[str]:
    """Canonical make name, e.g. "VOLKSWAGEN" -> "Volkswagen", "vw" -> "Volkswagen"."""
    if not make:
        return make
    key = " ".join(make.strip().lower().split())
    if key in KNOWN_MAKES:
        return KNOWN_MAKES[key]
    return key.title()


# ---------------------------------------------------------------------------
# Manufacturer model/variant rules
# ---------------------------------------------------------------------------

# matcher(model) -> match or None; splitter(match, model, variant) -> (model, variant)
Matcher = Callable[[str], Optional[re.Match]]
Splitter = Callable[[re.Match, str, Optional[str]], Tuple[str, Optional[str]]]


@dataclass
class ModelRule:
    make: str
    matcher: Matcher
    splitter: Splitter


_RULES: List[ModelRule] = []


def register_rule(make: str, matcher: Matcher, splitter: Splitter):
    """Register a model/variant splitting rule for a canonical make."""
    _RULES.append(ModelRule(make=make, matcher=matcher, splitter=splitter))


def rules_for(make: Optional[str]) -> List[ModelRule]:
    return [r for r in _RULES if r.make == make]


def _code_splitter(match: re.Match, model: str, variant: Optional[str]) -> Tuple[str, Optional[str]]:
    """model = leading code, variant = remainder unless a variant is already set."""
    code = match.group(1)
    rest = (match.group(2) or "").strip()
    return code, variant or rest or None


# Volkswagen: base name + trim text ("Golf GTE", "POLO MATCH TSI")
VW_BASE_MODELS = [
    "Golf", "Polo", "Passat", "Tiguan", "Touareg", "Arteon", "T-Roc", "T-Cross",
    "Up", "ID.3", "ID.4", "Scirocco", "Touran", "Sharan", "Caddy", "Transporter",
    "Amarok", "Jetta", "Beetle", "Taigo",
]
_VW_CANONICAL = {name.lower(): name for name in VW_BASE_MODELS}
_VW_PATTERN = re.compile(
    r"^(" + "|".join(re.escape(name) for name in VW_BASE_MODELS) + r")(?:\s+(.*))?$",
    re.IGNORECASE,
)


def _vw_splitter(match: re.Match, model: str, variant: Optional[str]) -> Tuple[str, Optional[str]]:
    base = _VW_CANONICAL[match.group(1).lower()]
    suffix = (match.group(2) or "").strip()
    return base, variant or suffix or None


register_rule("Volkswagen", _VW_PATTERN.match, _vw_splitter)

# Premium alphanumeric codes
_BMW_PATTERN = re.compile(r"^([XZMIi]\d{1,2}|\d{3}[A-Za-z]{0,2})(?:\s+(.*))?$")
_AUDI_PATTERN = re.compile(r"^([AQ]\d|TT|R8)(?:\s+(.*))?$", re.IGNORECASE)
_VOLVO_PATTERN = re.compile(r"^(XC\d{2}|[VSC]\d{2})(?:\s+(.*))?$", re.IGNORECASE)


def _upper_code_splitter(match: re.Match, model: str, variant: Optional[str]) -> Tuple[str, Optional[str]]:
    code, new_variant = _code_splitter(match, model, variant)
    return code.upper(), new_variant


register_rule("BMW", _BMW_PATTERN.match, _code_splitter)
register_rule("Audi", _AUDI_PATTERN.match, _upper_code_splitter)
register_rule("Volvo", _VOLVO_PATTERN.match, _upper_code_splitter)

# Mercedes-Benz class letter: "C220 AMG Line" -> "C-Class"
_MERCEDES_PATTERN = re.compile(r"^([A-Z])\s?(\d{3})")


def _class_splitter(match: re.Match, model: str, variant: Optional[str]) -> Tuple[str, Optional[str]]:
    return f"{match.group(1)}-Class", variant or model


register_rule("Mercedes-Benz", _MERCEDES_PATTERN.match, _class_splitter)


def split_model_variant(make: Optional[str], model: Optional[str],
                        variant: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Apply the first matching manufacturer rule to (model, variant)."""
    if not model:
        return model, variant
    for rule in rules_for(make):
        match = rule.matcher(model.strip())
        if match:
            new_model, new_variant = rule.splitter(match, model.strip(), variant)
            if (new_model, new_variant) != (model, variant):
                logger.debug(f"{make} rule: {model!r}/{variant!r} -> {new_model!r}/{new_variant!r}")
            return new_model, new_variant
    return model, variant


# ---------------------------------------------------------------------------
# Field canonical forms
# ---------------------------------------------------------------------------

def normalize_body_type(body_type: Optional[str]) -> Optional[str]:
    """'HATCHBACK' -> 'Hatchback'."""
    if not body_type:
        return body_type
    text = body_type.strip()
    return text[:1].upper() + text[1:].lower()


def normalize_fuel_type(fuel_type: Optional[str]) -> Optional[str]:
    if not fuel_type:
        return fuel_type
    text = fuel_type.strip().lower()
    if "plug" in text:
        if "petrol" in text:
            return "Petrol Plug-in Hybrid"
        if "diesel" in text:
            return "Diesel Plug-in Hybrid"
        return "Plug-in Hybrid"
    if "hybrid" in text or ("electric" in text and ("petrol" in text or "diesel" in text)):
        if "diesel" in text:
            return "Diesel Hybrid"
        if "petrol" in text:
            return "Petrol Hybrid"
        return "Hybrid"
    if "petrol" in text or "gasoline" in text:
        return "Petrol"
    if "diesel" in text:
        return "Diesel"
    if "electric" in text:
        return "Electric"
    return text.capitalize()


def normalize_transmission(transmission: Optional[str]) -> Optional[str]:
    if not transmission:
        return transmission
    text = transmission.strip().lower()
    if "semi" in text:
        return "Semi-Automatic"
    if "auto" in text or "cvt" in text or "dsg" in text:
        return "Automatic"
    if "manual" in text:
        return "Manual"
    return text.title()


def normalize_color(color: Optional[str]) -> Optional[str]:
    if not color:
        return color
    return color.strip().title()


def build_display_title(make: Optional[str], model: Optional[str], engine_size: Optional[float],
                        variant: Optional[str], transmission: Optional[str]) -> Optional[str]:
    """'Make Model X.XL Variant Transmission', skipping missing parts."""
    parts = []
    if make:
        parts.append(make)
    if model:
        parts.append(model)
    if engine_size:
        parts.append(f"{float(engine_size):.1f}L")
    if variant:
        parts.append(variant)
    if transmission:
        parts.append(transmission)
    return " ".join(parts) if parts else None


# ---------------------------------------------------------------------------
# Hybrid heuristics
# ---------------------------------------------------------------------------

_MHEV = re.compile(r"mhev", re.IGNORECASE)
_PLUG_IN = re.compile(r"\bGTE\b|PHEV|e-Hybrid|Plug-in|TFSI e\b", re.IGNORECASE)
_BMW_PLUG_IN = re.compile(r"\b\d{3}e\b")


def is_mild_hybrid(*texts: Optional[str]) -> bool:
    return any(t and _MHEV.search(t) for t in texts)


def is_plug_in_hybrid(make: Optional[str], *texts: Optional[str]) -> bool:
    for text in texts:
        if not text:
            continue
        if _PLUG_IN.search(text):
            return True
        if make == "BMW" and _BMW_PLUG_IN.search(text):
            return True
    return False


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

@dataclass
class NormalizedFields:
    values: Dict[str, Any] = field(default_factory=dict)
    sources: Dict[str, str] = field(default_factory=dict)


def normalize_profile(fields: Dict[str, Any], sources: Dict[str, str]) -> NormalizedFields:
    """
    Normalize merged fields.

    Args:
        fields: Merged field values.
        sources: Field -> provider provenance from the merge.

    Returns:
        NormalizedFields; a variant produced by a model split inherits the
        model's source. Inputs are not modified.
    """
    values = dict(fields)
    provenance = dict(sources)

    if values.get("make"):
        values["make"] = normalize_make(values["make"])

    make = values.get("make")
    model, variant = split_model_variant(make, values.get("model"), values.get("variant"))
    if model is not None:
        values["model"] = model
    if variant and variant != fields.get("variant"):
        values["variant"] = variant
        provenance["variant"] = provenance.get("model", provenance.get("variant"))

    for name, fn in (
        ("body_type", normalize_body_type),
        ("fuel_type", normalize_fuel_type),
        ("transmission", normalize_transmission),
        ("color", normalize_color),
    ):
        if values.get(name):
            values[name] = fn(values[name])

    title = build_display_title(
        make, values.get("model"), values.get("engine_size"),
        values.get("variant"), values.get("transmission"),
    )
    values["display_title"] = title

    mild = is_mild_hybrid(values.get("model"), values.get("variant"), title)
    values["is_mild_hybrid"] = mild
    fuel = values.get("fuel_type")
    if mild and fuel and "hybrid" not in fuel.lower():
        values["fuel_type"] = f"{fuel} Hybrid"
        logger.debug(f"Mild hybrid detected: fuel {fuel!r} -> {values['fuel_type']!r}")

    values["is_plug_in_hybrid"] = is_plug_in_hybrid(
        make, values.get("model"), values.get("variant"), title
    )

    return NormalizedFields(values=values, sources=provenance)
