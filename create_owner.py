"""Create the site owner.

Usage:
  python create_owner.py --username admin --email me@example.com [--display-name "Jane"]

The password is prompted for unless --password is given. Fails if an owner
already exists.
"""

import argparse
import getpass
import sys

import auth_service
import models
from database import SessionLocal, engine
from errors import AppError
from logging_config import setup_logging


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Provision the single site owner")
    ap.add_argument("--username", required=True)
    ap.add_argument("--email", required=True, help="recovery email for password resets")
    ap.add_argument("--display-name", default=None)
    ap.add_argument("--password", default=None)
    args = ap.parse_args(argv)

    setup_logging()
    password = args.password or getpass.getpass("Password: ")

    models.Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        owner = auth_service.provision_owner(
            db,
            username=args.username,
            password=password,
            recovery_email=args.email,
            display_name=args.display_name,
        )
    except AppError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1
    finally:
        db.close()

    print(f"Created site owner {owner.username} ({owner.id})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
