"""One-time DB setup: create tables and seed a demo exam."""
from exam_engine.db.session import Base, get_engine, get_session_factory
from exam_engine.db.models import Exam, ExamQuestion
from exam_engine.schemas.exam import ExamCreate

DEMO_EXAM = ExamCreate(
    title="Geography Basics Certification Exam",
    course_id="geo-101",
    description="Short demo exam covering capitals and continents.",
    passing_score=60.0,
    time_limit_seconds=15 * 60,
    max_attempts=3,
    shuffle_questions=True,
    shuffle_options=True,
    questions=[
        {
            "prompt": "What is the capital of Kenya?",
            "question_type": "multiple_choice",
            "options": ["Nairobi", "Mombasa", "Kisumu", "Nakuru"],
            "correct_answer": "A",
            "points": 2,
            "difficulty": "easy",
        },
        {
            "prompt": "Which continent is Brazil in?",
            "question_type": "multiple_choice",
            "options": ["Africa", "South America", "Europe"],
            "correct_answer": "B",
            "points": 3,
        },
        {
            "prompt": "The Nile flows into the Mediterranean Sea.",
            "question_type": "true_false",
            "correct_answer": "True",
            "explanation": "It drains through the Nile Delta in Egypt.",
        },
        {
            "prompt": "Name the capital of France.",
            "question_type": "short_answer",
            "correct_answer": "Paris|paris city",
            "points": 2,
            "difficulty": "easy",
        },
    ],
)

# 1. Create all tables
engine = get_engine()
Base.metadata.create_all(bind=engine)
print("✅ All tables created")

session_factory = get_session_factory()
with session_factory() as db:
    # 2. Demo exam with its question bank
    exam = db.query(Exam).filter(Exam.title == DEMO_EXAM.title).first()
    if not exam:
        exam = Exam(**DEMO_EXAM.model_dump(exclude={"questions"}))
        for position, q in enumerate(DEMO_EXAM.questions):
            question = ExamQuestion(
                position=position,
                prompt=q.prompt,
                question_type=q.question_type.value,
                correct_answer=q.correct_answer,
                explanation=q.explanation,
                points=q.points,
                difficulty=q.difficulty.value,
            )
            question.set_options(q.options)
            exam.questions.append(question)
        db.add(exam)
        db.commit()
        print(f"✅ Created demo exam (id={exam.id}, {len(DEMO_EXAM.questions)} questions)")
    else:
        print("  Demo exam already exists")
