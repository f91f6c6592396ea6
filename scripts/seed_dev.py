#!/usr/bin/env python
"""Create the schema and seed a default provider for local development.

Constraints:
- Refuses to run in staging or prod (MURMUR_ENV check)
- Idempotent: existing tables, providers and models are left alone
- Never runs automatically (manual invocation only)

Usage:
    cd python && DATABASE_URL=... SEED_OPENAI_API_KEY=sk-... \
        python ../scripts/seed_dev.py

SEED_OPENAI_MODEL picks the model registered as default (gpt-4o-mini).
"""

import os
import sys


def main():
    # 1. Environment check (hard fail in staging/prod)
    murmur_env = os.getenv("MURMUR_ENV", "local")
    if murmur_env not in ("local", "test"):
        print(f"ERROR: seed_dev.py refuses to run in MURMUR_ENV={murmur_env}")
        sys.exit(1)

    # 2. Check DATABASE_URL
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        print("ERROR: DATABASE_URL environment variable must be set")
        sys.exit(1)

    from murmur.db.engine import create_db_engine
    from murmur.db.models import Base
    from murmur.db.session import create_session_factory
    from murmur.errors import ConflictError
    from murmur.schemas.providers import ModelDescriptorCreate, ProviderCreate
    from murmur.services.providers import create_model, create_provider

    engine = create_db_engine(database_url)

    # 3. Schema
    Base.metadata.create_all(engine)

    # 4. Optional provider seed
    api_key = os.getenv("SEED_OPENAI_API_KEY")
    model_sdk_id = os.getenv("SEED_OPENAI_MODEL", "gpt-4o-mini")
    provider_created = model_created = False

    if api_key:
        db = create_session_factory(engine)()
        try:
            try:
                create_provider(
                    db, ProviderCreate(id="openai", name="OpenAI", api_key=api_key, is_default=True)
                )
                provider_created = True
            except ConflictError:
                pass
            try:
                create_model(
                    db,
                    ModelDescriptorCreate(
                        provider_id="openai",
                        model_sdk_id=model_sdk_id,
                        name=model_sdk_id,
                        is_default=True,
                    ),
                )
                model_created = True
            except ConflictError:
                pass
        finally:
            db.close()

    # 5. Report
    db_display = database_url.split("@")[1] if "@" in database_url else database_url
    print(f"Database: {db_display}")
    print(f"MURMUR_ENV: {murmur_env}")
    print()
    print(f"Tables: {', '.join(sorted(Base.metadata.tables))}")
    if not api_key:
        print("SEED_OPENAI_API_KEY not set; no provider seeded.")
        return
    print(f"{'Created' if provider_created else 'Exists'}: provider openai")
    print(f"{'Created' if model_created else 'Exists'}: model openai:{model_sdk_id}")


if __name__ == "__main__":
    main()
