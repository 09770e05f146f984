"""
Demo data for chunked exports.

Generates a deterministic ``public.person_company`` table (CSV + Postgres COPY)
and a matching job properties file whose data query carries the row-number
helper column first and a window-count helper column last, as the exporter
expects.
"""

from __future__ import annotations

import csv
import random
import sys
import tempfile
import time
from pathlib import Path

import psycopg
import typer
from psycopg.conninfo import make_conninfo

app = typer.Typer(help="Seed a demo table in Postgres and write a sample job file.")

COLUMNS = ["name", "company", "amount", "note"]

CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS public.person_company (
    id BIGSERIAL PRIMARY KEY,
    name TEXT NOT NULL,
    company TEXT,
    amount NUMERIC(12, 2),
    note TEXT
)
"""

HEADER_SQL = "select 0 as row_num, 'name', 'company', 'amount', 'note'"
DATA_SQL = (
    "select row_number() over (order by id) as row_num, name, company, amount, note, "
    "count(*) over () as total_rows from public.person_company"
)

_FIRST = ["Alice", "Bob", "Carla", "Dmitri", "Eve", "Farah", "Gus", "Hana"]
_LAST = ["Smith", "O'Neil", "Nakamura", "Jr.", "da Silva", "Müller"]
_COMPANIES = ["Acme, Inc.", "Globex", "Initech", 'The "Big" Co', None]
_NOTES = ["", "multi\nline", "plain", None, "semi;colon"]


def _generate_rows_csv(csv_path: Path, rows: int, seed: int) -> None:
    """Write ``rows`` synthetic people; empty cells load as NULL."""
    rng = random.Random(seed)
    with csv_path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(COLUMNS)
        for _ in range(rows):
            amount = rng.choice([None, round(rng.uniform(1, 10_000), 2)])
            writer.writerow(
                [
                    f"{rng.choice(_FIRST)} {rng.choice(_LAST)}",
                    rng.choice(_COMPANIES) or "",
                    "" if amount is None else f"{amount:.2f}",
                    rng.choice(_NOTES) or "",
                ]
            )


def _copy_into_db(dsn: str, csv_path: Path, truncate: bool = True) -> None:
    with psycopg.connect(dsn) as conn:
        with conn.cursor() as cur:
            cur.execute(CREATE_TABLE_SQL)
            if truncate:
                cur.execute("TRUNCATE TABLE public.person_company RESTART IDENTITY")
            with cur.copy(
                "COPY public.person_company (name, company, amount, note) "
                "FROM STDIN WITH (FORMAT csv, HEADER TRUE)"
            ) as copy:
                with csv_path.open("r", encoding="utf-8") as f:
                    for line in f:
                        copy.write(line)
        conn.commit()


def _write_properties(path: Path, db_url: str, username: str, password: str, prefix: str) -> None:
    lines = [
        "# Generated by scripts/seed_demo.py",
        f"headerSql={HEADER_SQL}",
        f"dataSql={DATA_SQL}",
        f"db.url={db_url}",
        f"db.username={username}",
        f"db.password={password}",
        f"exportFileName={prefix}",
    ]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


@app.command()
def main(
    rows: int = typer.Option(250_000, "--rows", "-r", help="Number of rows to generate."),
    seed: int = typer.Option(42, "--seed", help="Deterministic RNG seed."),
    db_url: str = typer.Option(
        "postgresql://localhost:5432/chunked_export", "--db-url", help="Postgres URL."
    ),
    username: str = typer.Option("postgres", "--username", "-u"),
    password: str = typer.Option("postgres", "--password", "-p"),
    properties: Path = typer.Option(
        Path("loader.properties"), "--properties", help="Where to write the job file."
    ),
    prefix: str = typer.Option("person_company", "--prefix", help="Output file prefix."),
    no_load: bool = typer.Option(False, "--no-load", help="Only write the job file."),
) -> None:
    """
    Generate demo rows, load them with COPY and write a matching job file.
    """
    _write_properties(properties, db_url, username, password, prefix)
    typer.echo(f"Wrote job file {properties}")
    if no_load:
        return

    start = time.perf_counter()
    tmpdir = Path(tempfile.mkdtemp(prefix="chunked_export_seed_"))
    csv_path = tmpdir / "person_company.csv"
    typer.echo(f"Generating {rows:,} rows -> {csv_path} (seed={seed})")
    _generate_rows_csv(csv_path, rows=rows, seed=seed)

    dsn = make_conninfo(db_url, user=username, password=password)
    typer.echo("Loading CSV into Postgres via COPY...")
    _copy_into_db(dsn, csv_path)
    typer.echo(f"Seeded {rows:,} rows in {time.perf_counter() - start:.2f}s.")


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
