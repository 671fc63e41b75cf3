# tests/helpers.py
"""测试用的请求体与请求头构造。"""


def register_payload(**overrides):
    body = {
        "firstName": "Thomas",
        "lastName": "Anderson",
        "username": "neo",
        "email": "neo@x.com",
        "password": "matrix1",
        "specialization": "tech",
        "motivation": "follow the white rabbit",
    }
    body.update(overrides)
    return body


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
