"""Downloadable sample import file.

Header row uses the schema labels (required columns first). A leading
comment row lists the known categories; the parser skips it on upload.
"""

import csv
import io
from typing import Sequence

from catalog_backend.core.import_schema import ImportSchema

TEMPLATE_FILENAME = "products_import_sample.csv"

FALLBACK_CATEGORIES = ("Bangles", "Earing", "Hair Accessorie")
FALLBACK_TYPES = ("Kada Bangles", "Jhumkha", "Hair Band")


def _pick(names: Sequence[str], fallback: Sequence[str], i: int) -> str:
    return names[i] if i < len(names) else fallback[i]


def sample_rows(category_names: Sequence[str], type_names: Sequence[str]) -> list[dict[str, str]]:
    cats = [_pick(category_names, FALLBACK_CATEGORIES, i) for i in range(3)]
    types = [_pick(type_names, FALLBACK_TYPES, i) for i in range(3)]
    return [
        {
            "name": f"Silk Thread {types[0]} Set", "category": cats[0], "type": types[0],
            "mrp_price": "599", "title": "Silk Thread", "offer_price": "499", "ribbon": "Bestseller",
            "description": "Beautiful handcrafted silk thread product",
            "images": "https://images.unsplash.com/photo-1535632066927-ab7c9ab60908?w=400",
            "status": "active",
        },
        {
            "name": f"Traditional {types[1]}", "category": cats[1], "type": types[1],
            "mrp_price": "399", "title": "Silk Thread", "offer_price": "349", "ribbon": "New",
            "description": "Elegant traditional design with intricate silk thread work",
            "images": "https://images.unsplash.com/photo-1630019852942-f89202989a59?w=400",
            "status": "active",
        },
        {
            "name": f"Designer {types[2]}", "category": cats[2], "type": types[2],
            "mrp_price": "299", "title": "Silk Thread", "offer_price": "249", "ribbon": "",
            "description": "Colorful designer product for everyday use",
            "images": "https://images.unsplash.com/photo-1522338140262-f46f5913618a?w=400",
            "status": "active",
        },
    ]


def build_template_csv(
    schema: ImportSchema,
    category_names: Sequence[str] = (),
    type_names: Sequence[str] = (),
) -> str:
    columns = schema.required_columns + schema.optional_columns
    out = io.StringIO()
    writer = csv.writer(out, lineterminator="\n")

    known = ", ".join(category_names) if category_names else "none yet"
    writer.writerow([f"# NOTE: Category must match exactly. Available categories: {known}"])
    writer.writerow([c.label for c in columns])
    for row in sample_rows(category_names, type_names):
        writer.writerow([row.get(c.key, "") for c in columns])
    return out.getvalue()
