"""Print a password hash for the OPERATOR_PASSWORD_HASH setting."""

import getpass

from werkzeug.security import generate_password_hash


def main() -> None:
    password = getpass.getpass("Operator password: ")
    confirm = getpass.getpass("Repeat password: ")
    if not password or password != confirm:
        raise SystemExit("Passwords are empty or do not match.")
    print(generate_password_hash(password))


if __name__ == "__main__":
    main()
