import bcrypt
from jose import jwt as jose_jwt


def hash_password(pwd: str) -> str:
    return bcrypt.hashpw(pwd.encode(), bcrypt.gensalt()).decode()


def verify_password(pwd: str, hashed: str) -> bool:
    if not hashed:
        return False
    return bcrypt.checkpw(pwd.encode(), hashed.encode())


def create_token(user_id: str, role: str, secret: str) -> str:
    return jose_jwt.encode({"user_id": user_id, "role": role}, secret, algorithm="HS256")


def decode_token(token: str, secret: str) -> dict:
    return jose_jwt.decode(token, secret, algorithms=["HS256"])
