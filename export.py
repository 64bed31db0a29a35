import csv
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from rich.console import Console
from rich.table import Table

from models import ProductRow


console = Console()


def expected_header() -> List[str]:
    """Define the CSV header order written by `write_csv`."""
    return ["商品名", "ブランド", "価格", "URL", "画像URL"]


def output_path(output_dir: str, output_csv: str = "", today: Optional[str] = None) -> Path:
    """Resolve where this run's CSV goes. An explicit `output_csv` wins;
    otherwise the file is date-stamped with the current UTC date."""
    if output_csv:
        return Path(output_csv)
    if today is None:
        today = datetime.now(timezone.utc).date().isoformat()
    return Path(output_dir) / f"buyma_products_{today}.csv"


def write_csv(csv_path: Path, rows: Iterable[ProductRow]) -> int:
    """Write header and rows in one pass, replacing any previous file.

    Every data field is quoted so commas, quotes and newlines inside scraped
    text survive a round trip. The BOM lets spreadsheet apps pick UTF-8.
    """
    csv_path.parent.mkdir(parents=True, exist_ok=True)
    written = 0
    with csv_path.open("w", newline="", encoding="utf-8-sig") as f:
        header_writer = csv.writer(f, lineterminator="\n")
        header_writer.writerow(expected_header())
        writer = csv.writer(f, quoting=csv.QUOTE_ALL, lineterminator="\n")
        for r in rows:
            writer.writerow([r.name, r.brand, r.price, r.url, r.image_url])
            written += 1
    console.log(f"Wrote {written} rows to {csv_path}")
    return written


def print_preview(rows: Sequence[ProductRow], limit: int = 5, out: Optional[Console] = None) -> None:
    """Show the first few scraped products as a table."""
    out = out or console
    table = Table(title=f"First {min(limit, len(rows))} of {len(rows)} products")
    table.add_column("#", justify="right")
    table.add_column("Name")
    table.add_column("Brand")
    table.add_column("Price", justify="right")
    table.add_column("URL", overflow="fold")
    for i, r in enumerate(rows[:limit], start=1):
        table.add_row(str(i), r.name, r.brand, r.price, r.url)
    out.print(table)
