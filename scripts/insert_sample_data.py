import sys
from datetime import datetime, timedelta
from pathlib import Path

# プロジェクトのルートディレクトリをPythonパスに追加
sys.path.append(str(Path(__file__).parent.parent))

from sqlmodel import Session, select

from plantpal import db, models
from plantpal.auth import LOCAL_USER_ID
from plantpal.care import classify_happiness, compute_next_due_date
from plantpal.crud.utils import create_tasks_for_plant

SAMPLE_PLANTS = [
    {"name": "モンちゃん", "species": "Monstera deliciosa", "happiness": 82},
    {
        "name": "ポトス",
        "species": "Epipremnum aureum",
        "happiness": 58,
        "watering_interval_days": 5,
    },
    {
        "name": "サボテン",
        "species": "Echinocactus grusonii",
        "happiness": 31,
        "watering_interval_days": 14,
        "fertilizing_interval_days": 30,
    },
    {"name": "バジル", "species": "Ocimum basilicum", "happiness": 12, "watering_interval_days": 3},
]


def create_sample_plants(user_id: str = LOCAL_USER_ID):
    """サンプルの植物とお世話タスクを作成"""
    print("サンプル植物を作成中...")

    with Session(db.engine) as session:
        created_count = 0
        skipped_count = 0
        now = datetime.now()

        for plant_data in SAMPLE_PLANTS:
            existing = session.exec(
                select(models.Plant).where(
                    models.Plant.user_id == user_id,
                    models.Plant.name == plant_data["name"],
                )
            ).first()
            if existing:
                skipped_count += 1
                print(f"  スキップ: {plant_data['name']} (登録済み)")
                continue

            plant = models.Plant(user_id=user_id, **plant_data)
            # 前回のお世話は間隔の半分だけ前に済ませたことにする
            plant.last_watered = now - timedelta(days=plant.watering_interval_days // 2)
            plant.last_fertilized = now - timedelta(days=plant.fertilizing_interval_days // 2)
            plant.next_watering = compute_next_due_date(
                plant.last_watered, plant.watering_interval_days
            )
            plant.next_fertilizing = compute_next_due_date(
                plant.last_fertilized, plant.fertilizing_interval_days
            )
            session.add(plant)
            create_tasks_for_plant(session, plant, plant.next_watering, plant.next_fertilizing)
            created_count += 1
            print(f"  作成: {plant.name} ({plant.species}) ハピネス: {plant.happiness}")

        session.commit()

        print("\n✅ 植物処理完了:")
        print(f"   新規作成: {created_count}件")
        print(f"   スキップ: {skipped_count}件")


def show_summary(user_id: str = LOCAL_USER_ID):
    """データの統計情報を表示"""
    print("\n=== データ統計 ===")

    with Session(db.engine) as session:
        plants = session.exec(select(models.Plant).where(models.Plant.user_id == user_id)).all()
        tasks = session.exec(
            select(models.Task)
            .where(models.Task.user_id == user_id)
            .order_by(models.Task.scheduled_date)
        ).all()

        print(f"🌱 植物: {len(plants)}件")
        for plant in plants:
            print(f"   {plant.name}: {plant.happiness} ({classify_happiness(plant.happiness).value})")
        print(f"📋 タスク: {len(tasks)}件")
        for task in tasks:
            print(
                f"   {task.scheduled_date.strftime('%Y-%m-%d')} {task.type.value} - {task.plant_name}"
            )


if __name__ == "__main__":
    try:
        print("🚀 サンプルデータ作成を開始...")
        db.create_db_and_tables()
        create_sample_plants()
        show_summary()
        print("\n🎉 サンプルデータ作成完了!")

    except Exception as e:
        print(f"❌ エラーが発生しました: {e}")
        import traceback

        traceback.print_exc()
        sys.exit(1)
