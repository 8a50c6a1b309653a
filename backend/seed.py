from db import SessionLocal, init_db
from models import Player, TaskTemplate
import catalog


init_db()

WEEKDAYS_ONLY = {"saturday": False, "sunday": False}


def seed():
    with SessionLocal() as db:
        if db.query(Player).count() == 0:
            admin = catalog.create_player(db, "Parent", is_admin=True)
            for name in ("Avery", "Blake"):
                catalog.create_player(db, name)
        else:
            admin = db.query(Player).filter(Player.is_admin.is_(True)).first()

        if db.query(TaskTemplate).count() == 0:
            created_by = admin.id if admin else None
            catalog.create_template(db, "Brush Teeth", "morning", 150, created_by=created_by, sort_order=1)
            catalog.create_template(db, "Make Bed", "morning", 100, created_by=created_by, sort_order=2)
            catalog.create_template(db, "Homework", "afternoon", 300, created_by=created_by,
                                    sort_order=1, **WEEKDAYS_ONLY)
            catalog.create_template(db, "Brush Teeth", "bedtime", 150, created_by=created_by, sort_order=1)
            catalog.create_template(db, "Learn to Tie Shoes", "growth", 500, created_by=created_by)
            catalog.create_template(db, "Ride a Bike", "growth", 1000, created_by=created_by)


if __name__ == "__main__":
    seed()
