from pydantic import BaseModel


NOT_AVAILABLE = "N/A"


class ListingItem(BaseModel):
    """A product candidate found on the list page, before its detail page
    has been visited."""
    name: str
    url: str
    image_url: str


class ProductRow(BaseModel):
    """Canonical output schema for a single product.

    - One row per visited item URL
    - Missing brand/price are stored as "N/A", never empty
    - Price keeps the site's yen formatting (e.g. "¥12,800")
    """
    name: str
    brand: str
    price: str
    url: str
    image_url: str


def placeholder_row(item: ListingItem) -> ProductRow:
    """Row recorded when a detail page could not be scraped."""
    return ProductRow(
        name=item.name,
        brand=NOT_AVAILABLE,
        price=NOT_AVAILABLE,
        url=item.url,
        image_url=item.image_url,
    )
