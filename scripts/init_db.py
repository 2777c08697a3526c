from datetime import timedelta
from pathlib import Path
import sys


# Ensure imports work when running this file directly: `python scripts/init_db.py`.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from lesson_ledger.core.time_provider import default_time_provider
from lesson_ledger.db import Base, SessionLocal, engine
from lesson_ledger.models import CoursePrice, IndividualLesson, LessonSession, Payment, SessionStatus, Student


Base.metadata.create_all(bind=engine)

db = SessionLocal()
try:
    if not db.query(IndividualLesson).first():
        today = default_time_provider.today()
        db.add(CoursePrice(course_name='English', price_per_40_min=800, price_per_academic_hour=800))
        student = Student(name='Masha Ivanova')
        db.add(student)
        db.commit()
        db.refresh(student)

        lesson = IndividualLesson(student_id=student.id, student_name=student.name, subject='English', duration=60)
        db.add(lesson)
        db.commit()
        db.refresh(lesson)

        db.add(Payment(individual_lesson_id=lesson.id, lessons_count=6, amount=4800, payment_date=today - timedelta(days=21)))
        for week in range(-3, 5):
            status = SessionStatus.COMPLETED.value if week < 0 else SessionStatus.SCHEDULED.value
            if week == 1:
                status = SessionStatus.CANCELLED.value
            db.add(LessonSession(individual_lesson_id=lesson.id, lesson_date=today + timedelta(weeks=week), status=status))
        db.commit()
finally:
    db.close()

print('DB initialized with sample data.')
