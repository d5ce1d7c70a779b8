# scripts/reset_db.py
import asyncio
import sys
import os

# 모듈 경로 설정
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import text
from visibility.core import database

# 윈도우 환경 asyncio 에러 방지
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


async def reset_database():
    print("🧨 DB 초기화를 시작합니다 (DROP SCHEMA public)...")
    database.init_db()
    maker = database.get_async_session_maker()
    if maker is None:
        print("❌ DATABASE_URL이 없습니다. .env 설정을 확인하세요.")
        return

    async with maker() as session:
        try:
            # 스키마를 통째로 날리고 다시 만든 뒤 alembic upgrade head로 복구.
            await session.execute(text("DROP SCHEMA public CASCADE;"))
            await session.execute(text("CREATE SCHEMA public;"))
            await session.commit()
            print("✅ DB가 완전히 초기화되었습니다. alembic upgrade head를 실행하세요.")
        except Exception as e:
            await session.rollback()
            print(f"❌ 초기화 실패: {e}")
    engine = database.get_engine()
    if engine is not None:
        await engine.dispose()

if __name__ == "__main__":
    asyncio.run(reset_database())
