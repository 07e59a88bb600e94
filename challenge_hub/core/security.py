from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def normalize_password(password: str) -> str:
    """Content passwords are case-insensitive and ignore surrounding whitespace."""
    return password.strip().lower()


def get_password_hash(password: str) -> str:
    return pwd_context.hash(normalize_password(password))


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not plain_password or not hashed_password:
        return False
    try:
        return pwd_context.verify(normalize_password(plain_password), hashed_password)
    except ValueError:
        # Unrecognized or corrupt hash
        return False
