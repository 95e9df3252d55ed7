"""UK store identity resolution.

Maps free-text retailer names from receipts to canonical store ids and
serves store metadata (display names, brand colours, types).

Resolution runs an ordered list of match strategies and returns the first
hit: exact alias, alias after noise-suffix stripping, store id as a whole
word, alias as a prefix. An unrecognized store is a normal outcome and
resolves to None.
"""

import logging
import re
from collections.abc import Callable, Iterable
from types import MappingProxyType

from .models import StoreIdentity, StoreType

logger = logging.getLogger(__name__)

_ASIAN = frozenset({"chinese", "japanese", "korean", "thai", "vietnamese"})


def _store(
    id: str,
    display_name: str,
    brand_color: str,
    store_type: StoreType,
    market_share: float,
    aliases: Iterable[str],
    cuisine_tags: Iterable[str] = (),
) -> StoreIdentity:
    return StoreIdentity(
        id=id,
        display_name=display_name,
        brand_color=brand_color,
        store_type=store_type,
        market_share=market_share,
        aliases=tuple(alias.lower() for alias in aliases),
        cuisine_tags=frozenset(cuisine_tags),
    )


# Approximate 2024 UK market share, largest first.
UK_STORES: tuple[StoreIdentity, ...] = (
    _store("tesco", "Tesco", "#00539F", StoreType.SUPERMARKET, 27, [
        "tesco", "tesco express", "tesco extra", "tesco metro", "tesco superstore",
        "tesco stores", "tesco stores ltd", "tesco plc", "tesco home plus",
        "tesco petrol",
    ]),
    _store("sainsburys", "Sainsbury's", "#F06C00", StoreType.SUPERMARKET, 15, [
        "sainsbury's", "sainsburys", "sainsbury", "sainsbury's local",
        "sainsburys local", "sainsbury local", "j sainsbury", "j sainsbury plc",
        "sainsbury's supermarket", "sainsburys supermarket",
    ]),
    _store("asda", "Asda", "#7AB51D", StoreType.SUPERMARKET, 14, [
        "asda", "asda stores", "asda supermarket", "asda superstore",
        "asda express", "asda living", "asda stores ltd", "asda supercentre",
    ]),
    _store("aldi", "Aldi", "#0056A4", StoreType.DISCOUNTER, 10, [
        "aldi", "aldi stores", "aldi uk", "aldi stores ltd", "aldi sud",
        "aldi south",
    ]),
    _store("morrisons", "Morrisons", "#007A3C", StoreType.SUPERMARKET, 9, [
        "morrisons", "morrison's", "wm morrisons", "wm morrison",
        "morrisons supermarket", "morrisons store", "morrisons daily",
        "morrisons supermarkets", "wm morrison supermarkets",
    ]),
    _store("lidl", "Lidl", "#0050AA", StoreType.DISCOUNTER, 7, [
        "lidl", "lidl uk", "lidl stores", "lidl gb", "lidl great britain",
        "lidl ltd",
    ]),
    _store("coop", "Co-op", "#00B2A9", StoreType.CONVENIENCE, 5, [
        "co-op", "coop", "co op", "the co-operative", "the cooperative",
        "cooperative food", "co-op food", "co-operative food", "coop food",
        "the co-op", "midcounties co-op", "midcounties coop", "central co-op",
        "southern co-op",
    ]),
    _store("waitrose", "Waitrose", "#006C4C", StoreType.PREMIUM, 5, [
        "waitrose", "waitrose & partners", "waitrose and partners",
        "little waitrose", "waitrose food", "john lewis waitrose",
    ]),
    _store("marks", "M&S Food", "#000000", StoreType.PREMIUM, 3, [
        "m&s", "marks & spencer", "marks and spencer", "m&s food", "m & s",
        "marks", "marks spencer", "m&s foodhall", "m&s simply food",
        "marks & spencer food", "marks and spencer food", "m and s",
    ]),
    _store("iceland", "Iceland", "#E31837", StoreType.FROZEN, 2, [
        "iceland", "iceland foods", "iceland stores", "the food warehouse",
        "food warehouse", "iceland food warehouse",
    ]),
    _store("nisa", "Nisa Local", "#ED1C24", StoreType.CONVENIENCE, 1, [
        "nisa", "nisa local", "nisa extra", "nisa retail", "nisa today's",
        "nisa todays",
    ]),
    _store("spar", "Spar", "#DA291C", StoreType.CONVENIENCE, 1, [
        "spar", "spar uk", "spar express", "spar store", "spar stores",
        "eurospar",
    ]),
    _store("londis", "Londis", "#E31837", StoreType.CONVENIENCE, 0.5, [
        "londis", "londis store", "londis stores", "londis retail",
    ]),
    _store("costcutter", "Costcutter", "#EE2A24", StoreType.CONVENIENCE, 0.5, [
        "costcutter", "costcutter supermarkets", "costcutter store", "cost cutter",
    ]),
    _store("premier", "Premier", "#6B2C91", StoreType.CONVENIENCE, 0.5, [
        "premier", "premier stores", "premier store", "premier convenience",
        "premier express",
    ]),
    _store("onestop", "One Stop", "#E4002B", StoreType.CONVENIENCE, 0.5, [
        "one stop", "onestop", "one-stop", "one stop stores", "one stop shop",
    ]),
    _store("budgens", "Budgens", "#78BE20", StoreType.CONVENIENCE, 0.5, [
        "budgens", "budgen", "budgens store", "budgens local",
    ]),
    _store("farmfoods", "Farmfoods", "#009639", StoreType.FROZEN, 0.5, [
        "farmfoods", "farm foods", "farmfoods ltd", "farmfoods store",
        "farmfoods frozen",
    ]),
    _store("costco", "Costco", "#005DAA", StoreType.WHOLESALE, 0.5, [
        "costco", "costco wholesale", "costco uk", "costco warehouse",
        "costco membership",
    ]),
    _store("booker", "Booker", "#00529B", StoreType.WHOLESALE, 0.5, [
        "booker", "booker wholesale", "booker cash & carry",
        "booker cash and carry", "makro", "booker makro",
    ]),
    # Specialty stores
    _store("wingyip", "Wing Yip", "#CC0000", StoreType.SPECIALTY, 0.1, [
        "wing yip", "wing yip superstore", "wing yip oriental", "wing yip chinese",
        "wing yip birmingham", "wing yip manchester", "wing yip croydon",
        "wing yip cricklewood",
    ], _ASIAN),
    _store("loonfung", "Loon Fung", "#D4262C", StoreType.SPECIALTY, 0.1, [
        "loon fung", "loon fung supermarket", "loon fung chinese",
        "loon fung chinese supermarket",
    ], _ASIAN),
    _store("seewoo", "SeeWoo", "#E31937", StoreType.SPECIALTY, 0.1, [
        "seewoo", "see woo", "seewoo supermarket", "see woo chinese",
        "seewoo oriental", "see woo oriental",
    ], _ASIAN),
    _store("hoo_hing", "Hoo Hing", "#B22222", StoreType.SPECIALTY, 0.1, [
        "hoo hing", "hoohing", "hoo hing wholesale", "hoo hing chinese",
        "hoo hing oriental",
    ], _ASIAN),
    _store("asian_supermarket", "Asian Store", "#FF6B35", StoreType.SPECIALTY, 0.1, [
        "asian supermarket", "oriental supermarket", "oriental grocery",
        "asian grocery", "chinese supermarket", "chinese grocery",
        "asian food store", "oriental store", "far east supermarket",
    ], _ASIAN),
    _store("african_grocery", "African Store", "#009639", StoreType.SPECIALTY, 0.1, [
        "african grocery", "african food store", "african store",
        "african supermarket", "afro caribbean store", "afro caribbean grocery",
        "african food market", "west african grocery", "east african grocery",
        "nigerian grocery", "nigerian store", "nigerian food store",
        "african market",
    ], ["nigerian", "ethiopian", "caribbean"]),
    _store("southasian_grocery", "Indian Store", "#FF9933", StoreType.SPECIALTY, 0.1, [
        "south asian grocery", "indian grocery", "indian store",
        "indian supermarket", "pakistani grocery", "pakistani store",
        "desi store", "desi grocery", "bangla grocery", "bangladeshi grocery",
        "sri lankan grocery", "asian grocery store",
    ], ["indian", "pakistani"]),
    _store("middleeastern_grocery", "Middle Eastern Store", "#006847", StoreType.SPECIALTY, 0.1, [
        "middle eastern grocery", "middle eastern store", "arabic grocery",
        "arab store", "halal grocery", "persian grocery", "turkish grocery",
        "turkish store", "lebanese grocery", "mediterranean grocery",
        "halal store", "halal supermarket",
    ], ["middle-eastern"]),
    _store("latin_grocery", "Latin American Store", "#CE1126", StoreType.SPECIALTY, 0.1, [
        "latin grocery", "latin american grocery", "latin american store",
        "mexican grocery", "mexican store", "latino store", "latin supermarket",
        "south american grocery",
    ], ["mexican"]),
)

# Stripped one at a time, in this order, before alias lookup is retried.
NOISE_SUFFIXES: tuple[str, ...] = (
    "express",
    "extra",
    "metro",
    "local",
    "superstore",
    "supermarket",
    "stores",
    "store",
    "ltd",
    "plc",
    "uk",
    "gb",
    "oriental",
    "grocery",
    "wholesale",
)

_PUNCTUATION = re.compile(r"[.,;:!?'\"‘’“”]")
_WHITESPACE = re.compile(r"\s+")
_SUFFIX_PATTERNS = tuple(
    re.compile(rf"\s+{re.escape(suffix)}$") for suffix in NOISE_SUFFIXES
)


def _build_alias_table(stores: Iterable[StoreIdentity]) -> MappingProxyType:
    table: dict[str, str] = {}
    for store in stores:
        for alias in store.aliases:
            owner = table.setdefault(alias, store.id)
            if owner != store.id:
                logger.warning(
                    "Alias %r claimed by both %s and %s; keeping %s",
                    alias, owner, store.id, owner,
                )
    return MappingProxyType(table)


ALIAS_TO_STORE_ID = _build_alias_table(UK_STORES)
STORE_ID_TO_INFO = MappingProxyType({store.id: store for store in UK_STORES})
_ID_PATTERNS = tuple(
    (store.id, re.compile(rf"(?<![a-z0-9_]){re.escape(store.id)}(?![a-z0-9_])"))
    for store in UK_STORES
)


def clean_store_text(raw: object) -> str:
    """Lowercase, drop punctuation and collapse whitespace."""
    if not isinstance(raw, str):
        return ""
    cleaned = _PUNCTUATION.sub("", raw.lower())
    return _WHITESPACE.sub(" ", cleaned).strip()


def strip_noise_suffixes(cleaned: str) -> list[str]:
    """Successive forms of a name with one more noise suffix removed each time."""
    forms: list[str] = []
    current = cleaned
    for pattern in _SUFFIX_PATTERNS:
        stripped = pattern.sub("", current).strip()
        if stripped != current:
            current = stripped
            forms.append(current)
    return forms


def _candidate_forms(cleaned: str) -> list[str]:
    forms = strip_noise_suffixes(cleaned)
    return [cleaned, forms[-1]] if forms else [cleaned]


# --- Match strategies, tried in order ---


def match_exact_alias(cleaned: str) -> str | None:
    return ALIAS_TO_STORE_ID.get(cleaned)


def match_stripped_alias(cleaned: str) -> str | None:
    for form in strip_noise_suffixes(cleaned):
        store_id = ALIAS_TO_STORE_ID.get(form)
        if store_id:
            return store_id
    return None


def match_store_id_token(cleaned: str) -> str | None:
    """Store id appearing as a whole word, e.g. "big tesco car park"."""
    forms = _candidate_forms(cleaned)
    for store_id, pattern in _ID_PATTERNS:
        if any(pattern.search(form) for form in forms):
            return store_id
    return None


def match_alias_prefix(cleaned: str) -> str | None:
    """Input starting with a known alias. "hasda" does not start with "asda"."""
    forms = _candidate_forms(cleaned)
    for store in UK_STORES:
        for alias in store.aliases:
            if any(form.startswith(alias) for form in forms):
                return store.id
    return None


MATCH_STRATEGIES: tuple[Callable[[str], str | None], ...] = (
    match_exact_alias,
    match_stripped_alias,
    match_store_id_token,
    match_alias_prefix,
)


def resolve_store(raw: object) -> str | None:
    """Resolve a raw store name to its canonical id.

    Args:
        raw: Store name as printed on a receipt or typed by a user

    Returns:
        Store id, or None if the store is not recognized

    Example:
        resolve_store("TESCO EXPRESS")      # "tesco"
        resolve_store("Sainsbury's Local")  # "sainsburys"
        resolve_store("Unknown Shop")       # None
    """
    cleaned = clean_store_text(raw)
    if not cleaned:
        return None

    for strategy in MATCH_STRATEGIES:
        store_id = strategy(cleaned)
        if store_id:
            return store_id
    return None


def store_key(raw: str) -> str:
    """Ledger key for a store: its canonical id, else its cleaned name."""
    return resolve_store(raw) or clean_store_text(raw)


# --- Catalogue lookups ---


def get_all_stores() -> list[StoreIdentity]:
    """All stores, largest market share first."""
    return sorted(UK_STORES, key=lambda s: s.market_share, reverse=True)


def get_store_info(store_id: str | None) -> StoreIdentity | None:
    if store_id is None:
        return None
    return STORE_ID_TO_INFO.get(store_id)


def get_stores_by_type(store_type: StoreType | str) -> list[StoreIdentity]:
    store_type = StoreType(store_type)
    return [s for s in get_all_stores() if s.store_type == store_type]


def is_valid_store_id(store_id: str) -> bool:
    return store_id in STORE_ID_TO_INFO


def get_all_store_ids() -> list[str]:
    return [s.id for s in get_all_stores()]


def get_stores_for_cuisines(cuisines: Iterable[str]) -> list[StoreIdentity]:
    """Specialty stores relevant to any of the given cuisine tags."""
    wanted = set(cuisines)
    return [s for s in get_all_stores() if s.cuisine_tags & wanted]


def get_mainstream_stores() -> list[StoreIdentity]:
    return [s for s in get_all_stores() if s.store_type != StoreType.SPECIALTY]


def get_specialty_stores() -> list[StoreIdentity]:
    return get_stores_by_type(StoreType.SPECIALTY)
