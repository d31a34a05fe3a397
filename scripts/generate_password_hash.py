# Print the stored form of one or more passwords/PINs
from __future__ import annotations
import argparse

from pos_core.auth import hash_credential
from pos_core.config import HASH_SCHEMES


def main():
    parser = argparse.ArgumentParser(description="Hash passwords for pasting into the users collection")
    parser.add_argument("passwords", nargs="+", help="Plaintext password(s) to hash")
    parser.add_argument("--scheme", choices=HASH_SCHEMES, default="legacy")
    args = parser.parse_args()

    print("=" * 50)
    for password in args.passwords:
        print(f"{password}: {hash_credential(password, args.scheme)}")
    print("=" * 50)
    print("Paste the hash into the user's password field.")


if __name__ == "__main__":
    main()
