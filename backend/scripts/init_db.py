"""
初始化数据库，并可选地立即生成一次利润预测快照

用法:
    python scripts/init_db.py
    python scripts/init_db.py --snapshot --days 14
"""
import argparse
import os
import sys
from datetime import timedelta

# 添加项目根目录到 Python 路径
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.database import SessionLocal, init_db
from app.services.profit_forecast_service import ProfitForecastService


def main():
    parser = argparse.ArgumentParser(description="初始化利润预测数据库")
    parser.add_argument("--snapshot", action="store_true", help="建表后生成利润预测快照")
    parser.add_argument("--days", type=int, default=14, help="快照回看天数")
    args = parser.parse_args()

    init_db()
    print("数据库表创建完成！")

    if args.snapshot:
        db = SessionLocal()
        try:
            service = ProfitForecastService(db)
            to_date = service.today()
            result = service.upsert_snapshots(to_date - timedelta(days=args.days), to_date)
            print(
                f"快照完成: 插入 {result.inserted}, 更新 {result.updated}, "
                f"未变化 {result.unchanged}, 跳过 {result.skipped}"
            )
        finally:
            db.close()


if __name__ == "__main__":
    main()
