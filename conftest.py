from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from records_cli import auth
from records_cli.commands.register.eligibility import AcademicPeriod
from records_cli.db.config import configure_sqlite
from records_cli.grade_definitions import get_grade_points
from records_cli.models import (
    Base,
    Course,
    CoursePrerequisite,
    CreditUnitRequirement,
    Department,
    IctStaff,
    Lecturer,
    Level,
    Program,
    ProgramCourse,
    Registration,
    Score,
    Season,
    Semester,
    StaffCourse,
    Student,
)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_sqlite(engine)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def catalog(db):
    """
    One program at level 200 in the first semester of the 2024/2025 season.

    Credit units: CSC201=4 (needs CSC101), CSC202=3, CSC203=3, CSC204=4,
    CSC205=2. The first-semester requirement is 6 to 10 credit units.
    """
    computing = Department(name="Computing")
    business = Department(name="Business")
    db.add_all([computing, business])
    db.flush()

    program = Program(code="BSCS", name="BSc Computer Science", department_id=computing.id)
    level100 = Level(name="Year 1", value=100)
    level200 = Level(name="Year 2", value=200)
    previous = Season(name="2023/2024")
    current = Season(name="2024/2025", is_active=True)
    db.add_all([program, level100, level200, previous, current])
    db.flush()

    semesters = {
        "previous_first": Semester(
            season_id=previous.id, name="2023/2024 First", type="FIRST", semester_number=1
        ),
        "previous_second": Semester(
            season_id=previous.id, name="2023/2024 Second", type="SECOND", semester_number=2
        ),
        "first": Semester(
            season_id=current.id,
            name="2024/2025 First",
            type="FIRST",
            semester_number=1,
            is_active=True,
        ),
        "second": Semester(
            season_id=current.id,
            name="2024/2025 Second",
            type="SECOND",
            semester_number=2,
            is_active=True,
        ),
    }
    db.add_all(semesters.values())

    courses = {
        code: Course(code=code, title=title, credit_unit=units, department_id=computing.id)
        for code, title, units in [
            ("CSC101", "Introduction to Programming", 3),
            ("CSC201", "Algorithms", 4),
            ("CSC202", "Databases", 3),
            ("CSC203", "Networks", 3),
            ("CSC204", "Artificial Intelligence", 4),
            ("CSC205", "Technical Writing", 2),
            ("BUS101", "Accounting", 3),
        ]
    }
    db.add_all(courses.values())
    db.flush()

    db.add(ProgramCourse(program_id=program.id, course_id=courses["CSC101"].id, level_id=level100.id))
    for code in ("CSC201", "CSC202", "CSC203", "CSC204", "CSC205"):
        db.add(ProgramCourse(program_id=program.id, course_id=courses[code].id, level_id=level200.id))
    db.add(CoursePrerequisite(course_id=courses["CSC201"].id, prerequisite_id=courses["CSC101"].id))
    requirement = CreditUnitRequirement(
        program_id=program.id,
        level_id=level200.id,
        semester_type="FIRST",
        minimum_credit_units=6,
        maximum_credit_units=10,
    )
    db.add(requirement)

    student = Student(
        reg_no="2024001",
        name="Thabo Mokoena",
        program_id=program.id,
        department_id=computing.id,
        current_level_id=level200.id,
    )
    hod = Lecturer(staff_id="L-HOD", name="Head", role="HOD", department_id=computing.id)
    examiner = Lecturer(
        staff_id="L-EXM", name="Examiner", role="EXAMINER", department_id=computing.id
    )
    lecturer = Lecturer(
        staff_id="L-LEC", name="Lecturer", role="LECTURER", department_id=computing.id
    )
    outsider = Lecturer(staff_id="L-OUT", name="Outsider", role="HOD", department_id=business.id)
    registrar = IctStaff(
        staff_id="S-REG",
        name="Registrar",
        can_manage_course_registration=True,
        can_manage_scores=True,
        can_manage_exams=True,
    )
    helpdesk = IctStaff(staff_id="S-HLP", name="Helpdesk")
    db.add_all([student, hod, examiner, lecturer, outsider, registrar, helpdesk])
    db.flush()

    db.add(
        StaffCourse(
            lecturer_id=lecturer.id,
            course_id=courses["CSC202"].id,
            semester_id=semesters["first"].id,
            season_id=current.id,
        )
    )
    db.commit()

    return SimpleNamespace(
        computing=computing,
        business=business,
        program=program,
        level100=level100,
        level200=level200,
        previous_season=previous,
        season=current,
        semesters=semesters,
        courses=courses,
        requirement=requirement,
        student=student,
        period=AcademicPeriod(
            semester_id=semesters["first"].id, level_id=level200.id, season_id=current.id
        ),
        admin=auth.Admin(1),
        registrar=auth.PermittedStaff(
            registrar.id,
            can_manage_course_registration=True,
            can_manage_scores=True,
            can_manage_exams=True,
        ),
        helpdesk=auth.PermittedStaff(helpdesk.id),
        hod=auth.Lecturer(hod.id, "HOD", computing.id),
        examiner=auth.Lecturer(examiner.id, "EXAMINER", computing.id),
        lecturer=auth.Lecturer(lecturer.id, "LECTURER", computing.id),
        outsider=auth.Lecturer(outsider.id, "HOD", business.id),
        as_student=auth.Student(student.id),
    )


@pytest.fixture
def make_registration(db, catalog):
    """Factory for a registration, optionally already graded."""

    def _make(course_code, semester="first", level=None, grade=None, student=None):
        student = student or catalog.student
        semester_row = catalog.semesters[semester]
        registration = Registration(
            student_id=student.id,
            course_id=catalog.courses[course_code].id,
            semester_id=semester_row.id,
            season_id=semester_row.season_id,
            level_id=(level or catalog.level200).id,
            has_score=grade is not None,
        )
        db.add(registration)
        db.flush()
        if grade is not None:
            point = get_grade_points(grade) or 0.0
            db.add(
                Score(
                    registration_id=registration.id,
                    exam_score=50.0,
                    total_score=50.0,
                    grade=grade,
                    point=point,
                    credit_points=point * catalog.courses[course_code].credit_unit,
                )
            )
        db.commit()
        return registration

    return _make
