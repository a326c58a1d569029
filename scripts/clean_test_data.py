"""清理测试数据：清空评价、项目与奖项，可选保留用户。"""
import argparse
import sys
from pathlib import Path

# 添加项目根目录到 path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import delete

from portal.config import get_settings
from portal.db import build_engine, build_session_factory
from portal.models import Award, Evaluation, Project, User, UserRole, project_authors


def clean(keep_users: bool = True):
    print("=" * 50)
    print("清理评审门户测试数据")
    print("=" * 50)

    settings = get_settings()
    factory = build_session_factory(build_engine(settings.database_url))

    with factory() as db:
        # 按外键依赖顺序删除
        print("\n[1/2] 清空评价、项目与奖项...")
        eval_count = db.execute(delete(Evaluation)).rowcount
        link_count = db.execute(delete(project_authors)).rowcount
        project_count = db.execute(delete(Project)).rowcount
        award_count = db.execute(delete(Award)).rowcount
        print(f"  删除 Evaluation: {eval_count} 条")
        print(f"  删除 项目-作者关联: {link_count} 条")
        print(f"  删除 Project: {project_count} 条")
        print(f"  删除 Award: {award_count} 条")

        print("\n[2/2] 清理用户...")
        if keep_users:
            print("  保留用户，跳过")
        else:
            user_count = db.execute(delete(User).where(User.role != UserRole.ADMIN)).rowcount
            print(f"  删除 User（管理员除外）: {user_count} 条")
        db.commit()
    print("  ✓ 数据库已清空")

    print("\n" + "=" * 50)
    print("清理完成！")
    print("=" * 50)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--all-users", action="store_true", help="同时删除非管理员用户")
    args = parser.parse_args()
    clean(keep_users=not args.all_users)
