"""
Static lookup tables for fragrance query understanding.

These tables are embedded constants. Keys are matched after normalization, so
they may be written in any case or punctuation.
"""

# Abbreviation -> canonical brand name
BRAND_ABBREVIATIONS = {
    "ysl": "Yves Saint Laurent",
    "tf": "Tom Ford",
    "jpg": "Jean Paul Gaultier",
    "ck": "Calvin Klein",
    "dg": "Dolce & Gabbana",
    "d&g": "Dolce & Gabbana",
    "mfk": "Maison Francis Kurkdjian",
    "pdm": "Parfums de Marly",
    "cdg": "Comme des Garcons",
}

# Nickname -> canonical product name
PRODUCT_NICKNAMES = {
    "adg": "Acqua di Gio",
    "chanel blue": "Bleu de Chanel",
    "blue chanel": "Bleu de Chanel",
    "blu": "Bleu de Chanel",
    "sauvage": "Dior Sauvage",
    "aventus": "Creed Aventus",
    "one million": "1 Million",
    "la nuit": "La Nuit de L'Homme",
    "eros": "Versace Eros",
    "flame": "Eros Flame",
    "br540": "Baccarat Rouge 540",
    "br 540": "Baccarat Rouge 540",
    "no 5": "Chanel No 5",
}

# Known misspelling -> correction, applied as whole-word replacements
TYPO_CORRECTIONS = {
    "eors": "eros",
    "erose": "eros",
    "sagave": "sauvage",
    "savage": "sauvage",
    "suavage": "sauvage",
    "aventis": "aventus",
    "chanell": "chanel",
    "channel": "chanel",
    "versachi": "versace",
    "farenheit": "fahrenheit",
    "aqua": "acqua",
    "flam": "flame",
    "guchi": "gucci",
    "armanni": "armani",
}

# Remote index synonym groups, pushed with the index settings
INDEX_SYNONYMS = {
    "ysl": ["yves saint laurent", "saint laurent"],
    "tf": ["tom ford"],
    "jpg": ["jean paul gaultier"],
    "ck": ["calvin klein"],
    "dg": ["dolce gabbana", "dolce & gabbana"],
    "chanel blue": ["bleu de chanel"],
    "blue chanel": ["bleu de chanel"],
    "sauvage": ["dior sauvage"],
    "aventus": ["creed aventus"],
    "adg": ["acqua di gio"],
    "one million": ["1 million"],
    "la nuit": ["la nuit de l'homme"],
}

# Brand tiers, checked in order; the first tier containing the brand wins
BRAND_TIERS = [
    ("tier1", 1.0, [
        "Dior", "Chanel", "Tom Ford", "Jean Paul Gaultier", "Azzaro", "Prada",
        "Valentino", "Viktor & Rolf", "Armani", "Giorgio Armani", "Versace",
        "YSL", "Yves Saint Laurent", "Creed", "Hermès", "Gucci",
    ]),
    ("tier2", 0.8, [
        "Parfums de Marly", "Diptyque", "Maison Francis Kurkdjian", "MFK",
        "Le Labo", "Byredo", "Amouage", "Xerjoff",
    ]),
    ("tier3", 0.6, [
        "Lattafa", "Armaf", "Dossier", "ALT Fragrances", "ALT", "Alexandria",
        "DUA", "Zara",
    ]),
    # Celebrity brands carry more weight than clone houses
    ("tier4", 0.7, [
        "Ariana Grande", "Billie Eilish", "Bella Hadid", "Rihanna", "Fenty",
        "Sabrina Carpenter",
    ]),
]

DEFAULT_MARKET_PRIORITY = 0.3

TRENDING_BRANDS = [
    "Jean Paul Gaultier", "Azzaro", "Prada", "Valentino", "Viktor & Rolf",
    "Parfums de Marly", "Diptyque", "Ariana Grande", "Billie Eilish", "Lattafa",
]

DEMOGRAPHIC_BRANDS = [
    ("gen_z", ["Ariana Grande", "Billie Eilish", "Sabrina Carpenter"]),
    ("budget_conscious", ["Lattafa", "Armaf", "Dossier", "ALT", "Zara"]),
    ("niche_enthusiast", ["Parfums de Marly", "Diptyque", "Le Labo", "Amouage"]),
]

# Queries that always justify promoting external results
POPULAR_SEARCH_TERMS = [
    "dior", "sauvage", "chanel", "tom ford", "creed", "aventus",
    "jean paul gaultier", "le male", "azzaro", "most wanted", "prada", "candy",
    "paradoxe", "valentino", "born in roma", "viktor rolf", "flowerbomb",
    "armani", "acqua di gio", "versace", "bright crystal", "ysl", "libre",
    "gucci", "baccarat rouge", "br540", "br 540", "delina", "parfums de marly",
    "cloud", "ariana grande", "santal 33", "another 13", "diptyque", "orpheon",
    "le labo", "lattafa", "khamrah", "armaf", "club de nuit", "dossier",
    "alt fragrances", "zara red temptation", "apple juice",
]

CONCENTRATION_TERMS = [
    "EDT", "EDP", "Eau de Toilette", "Eau de Parfum", "Parfum", "Cologne",
]
