# scripts/clean.py
from __future__ import annotations

import argparse
import os
from collections.abc import Iterable

from sqlalchemy import text
from sqlalchemy.orm import Session

import app.db.base  # noqa: F401  registra todos os models no metadata
from app.db import SessionLocal
from app.db.base_class import Base

DEFAULT_EXCLUSIONS = {"alembic_version"}  # preserva o estado das migrações


def truncate_all(db: Session, *, exclude: Iterable[str] = ()) -> list[str]:
    """
    Apaga os dados de todas as tabelas do engine (exceto 'exclude').
    PostgreSQL: TRUNCATE ... RESTART IDENTITY CASCADE. Outros: DELETE em ordem
    reversa de dependência.
    """
    to_skip = set(exclude) | DEFAULT_EXCLUSIONS
    tables = [t for t in Base.metadata.sorted_tables if t.name not in to_skip]
    if not tables:
        print("[clean] Não há tabelas para limpar (após exclusões).")
        return []

    names = [t.name for t in tables]
    print(f"[clean] Limpando tabelas ({len(names)}): {', '.join(names)}")
    if db.get_bind().dialect.name == "postgresql":
        qualified = ", ".join(f'"{n}"' for n in names)
        db.execute(text(f"TRUNCATE {qualified} RESTART IDENTITY CASCADE;"))
    else:
        for table in reversed(tables):
            db.execute(table.delete())
    db.commit()
    print("[clean] Concluído.")
    return names


def main():
    parser = argparse.ArgumentParser(
        description="Limpa dados de todas as tabelas (DEV/HML). Mantém alembic_version."
    )
    parser.add_argument(
        "--exclude",
        nargs="*",
        default=[],
        help="Tabelas para NÃO limpar (ex.: course_registrations).",
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Não perguntar confirmação (útil para CI). Ou defina ALLOW_CLEAN=1.",
    )
    parser.add_argument(
        "--keep-registrations",
        action="store_true",
        help="Atalho para preservar as matrículas (course_registrations).",
    )
    args = parser.parse_args()

    exclude = set(args.exclude)
    if args.keep_registrations:
        exclude.add("course_registrations")

    require_confirm = not (args.yes or os.getenv("ALLOW_CLEAN") == "1")
    if require_confirm:
        print(
            "⚠️  ATENÇÃO: isso irá APAGAR TODOS os dados, exceto tabelas excluídas "
            "e 'alembic_version'."
        )
        resp = input("Digite 'LIMPAR' para confirmar: ").strip()
        if resp != "LIMPAR":
            print("[clean] Cancelado pelo usuário.")
            return

    with SessionLocal() as db:
        truncate_all(db, exclude=exclude)


if __name__ == "__main__":
    main()
