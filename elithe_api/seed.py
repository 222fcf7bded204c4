from __future__ import annotations

from sqlalchemy import select

from .database import Base, engine, SessionLocal
from .models import PeTemplate


def upsert_defaults() -> None:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        defaults_pe_templates = [
            ("Posto Graal Km 38", "https://maps.google.com/?q=Posto+Graal+Km+38"),
            ("Shell Rodoanel", "https://maps.google.com/?q=Shell+Rodoanel"),
            ("Praça Panamericana", "https://maps.google.com/?q=Praca+Panamericana"),
        ]
        existing = set(db.execute(select(PeTemplate.name)).scalars().all())
        for name, location in defaults_pe_templates:
            if name not in existing:
                db.add(PeTemplate(name=name, location=location))

        db.commit()
    finally:
        db.close()


def main() -> None:
    upsert_defaults()
    print("Seed complete.")


if __name__ == "__main__":
    main()
