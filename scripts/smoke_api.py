"""对运行中的服务做一次冒烟检查：登录并读取奖项、项目与获奖列表。

用法::

    python scripts/smoke_api.py --email admin@innovatehub.com --password admin123
"""
import argparse

import requests


def main():
    parser = argparse.ArgumentParser(description="评审门户 API 冒烟检查")
    parser.add_argument("--base-url", default="http://127.0.0.1:8000")
    parser.add_argument("--email", default="admin@innovatehub.com")
    parser.add_argument("--password", required=True)
    args = parser.parse_args()
    api = f"{args.base_url}/api/v1"

    health = requests.get(f"{args.base_url}/health", timeout=10)
    print(f"健康检查: {health.status_code} {health.text}")

    # 登录
    login_response = requests.post(
        f"{api}/auth/login",
        data={"email": args.email, "password": args.password},
        timeout=10,
    )
    print(f"登录状态: {login_response.status_code}")
    if login_response.status_code != 200:
        print(f"登录失败: {login_response.text}")
        return

    token = login_response.json()["access_token"]
    headers = {"Authorization": f"Bearer {token}"}

    for title, path in (
        ("开放中的奖项", "/awards"),
        ("待评审项目", "/projects/not-evaluated"),
        ("已评审项目", "/projects/evaluated"),
        ("获奖项目", "/projects/winners"),
    ):
        response = requests.get(f"{api}{path}", headers=headers, timeout=10)
        print(f"\n{title} API状态: {response.status_code}")
        print(f"响应: {response.text}")


if __name__ == "__main__":
    main()
