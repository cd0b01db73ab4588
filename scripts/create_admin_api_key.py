"""Create an operator API key for local development."""
import sys

from mutual_aid.db import get_sessionmaker, init_engine
from mutual_aid.models.api_key import ApiKey, ApiScope
from mutual_aid.utils.apikey import gen_key


def main(name: str = "dev-admin-key") -> None:
    init_engine()
    db = get_sessionmaker()()

    raw_token, prefix, key_hash = gen_key()
    try:
        api_key = ApiKey(
            name=name,
            prefix=prefix,
            key_hash=key_hash,
            scope=ApiScope.admin,
            is_active=True,
        )
        db.add(api_key)
        db.commit()
        db.refresh(api_key)

        print("==========================================")
        print("Admin API key created")
        print("Use this key in your Authorization header:")
        print(f"    Authorization: Bearer {raw_token}")
        print(f"(DB id: {api_key.id}, scope: {api_key.scope.value})")
        print("==========================================")
    finally:
        db.close()


if __name__ == "__main__":
    main(*sys.argv[1:2])
