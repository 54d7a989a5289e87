# cart_engine/catalog_service/main.py
from fastapi import FastAPI, HTTPException

app = FastAPI(title="Catalog Service (dev mock)")


PRODUCTS = {
    "keyboard": {
        "id": "keyboard", "name": "Keyboard", "slug": "keyboard",
        "price": "199.99", "stock_quantity": 25, "is_active": True, "deleted_at": None,
    },
    "mouse": {
        "id": "mouse", "name": "Mouse", "slug": "mouse",
        "price": "49.50", "stock_quantity": 4, "is_active": True, "deleted_at": None,
    },
    "monitor": {
        "id": "monitor", "name": "Monitor", "slug": "monitor",
        "price": "899.00", "stock_quantity": 0, "is_active": True, "deleted_at": None,
    },
    "t-shirt": {
        "id": "t-shirt", "name": "T-Shirt", "slug": "t-shirt",
        "price": "79.00", "stock_quantity": 0, "is_active": True, "deleted_at": None,
    },
}

VARIANTS = {
    "t-shirt-m": {
        "id": "t-shirt-m", "product_id": "t-shirt", "sku": "TS-M",
        "price": None, "stock_quantity": 12, "options": {"size": "M"}, "is_active": True,
    },
    "t-shirt-xl": {
        "id": "t-shirt-xl", "product_id": "t-shirt", "sku": "TS-XL",
        "price": "89.00", "stock_quantity": 3, "options": {"size": "XL"}, "is_active": True,
    },
}

IMAGES = {
    "keyboard": {"url": "/static/keyboard.jpg", "thumbnail_url": "/static/keyboard-thumb.jpg"},
}


@app.get("/products/{product_id}")
def get_product(product_id: str):
    product = PRODUCTS.get(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@app.get("/products/{product_id}/primary-image")
def get_primary_image(product_id: str):
    image = IMAGES.get(product_id)
    if not image:
        raise HTTPException(status_code=404, detail="Image not found")
    return image


@app.get("/variants/{variant_id}")
def get_variant(variant_id: str):
    variant = VARIANTS.get(variant_id)
    if not variant:
        raise HTTPException(status_code=404, detail="Variant not found")
    return variant
