from datetime import datetime
from typing import Literal, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


SemesterType = Literal["FIRST", "SECOND", "SUMMER"]
CourseType = Literal["CORE", "ELECTIVE"]
LecturerRole = Literal["LECTURER", "HOD", "DEAN", "EXAMINER"]
GradeLetter = Literal["A", "B", "C", "D", "E", "F", "P", "I"]
ExamStatus = Literal[
    "PENDING",
    "ACTIVE",
    "COMPLETED",
    "GRADING_IN_PROGRESS",
    "GRADED",
    "RESULTS_PUBLISHED",
    "ARCHIVED",
    "CANCELLED",
]


class Department(Base):
    __tablename__ = "departments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<Department id={self.id!r} name={self.name!r}>"


class Program(Base):
    __tablename__ = "programs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    department_id: Mapped[int] = mapped_column(
        ForeignKey("departments.id", ondelete="cascade"), nullable=False
    )

    department: Mapped["Department"] = relationship()

    def __repr__(self) -> str:
        return f"<Program id={self.id!r} code={self.code!r} name={self.name!r}>"


class Level(Base):
    __tablename__ = "levels"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<Level id={self.id!r} name={self.name!r} value={self.value!r}>"


class Season(Base):
    __tablename__ = "seasons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    semesters: Mapped[list["Semester"]] = relationship(back_populates="season")

    def __repr__(self) -> str:
        return f"<Season id={self.id!r} name={self.name!r} is_active={self.is_active!r}>"


class Semester(Base):
    __tablename__ = "semesters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    season_id: Mapped[int] = mapped_column(
        ForeignKey("seasons.id", ondelete="cascade"), nullable=False
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[SemesterType] = mapped_column(String, nullable=False)
    semester_number: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    are_student_edits_locked: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    are_lecturer_score_edits_locked: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )

    season: Mapped["Season"] = relationship(back_populates="semesters")

    __table_args__ = (
        UniqueConstraint("season_id", "semester_number", name="unique_semester_number"),
        UniqueConstraint("season_id", "type", name="unique_semester_type"),
    )

    def __repr__(self) -> str:
        return (
            f"<Semester id={self.id!r} season_id={self.season_id!r} type={self.type!r} "
            f"semester_number={self.semester_number!r}>"
        )


class Course(Base):
    __tablename__ = "courses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    credit_unit: Mapped[int] = mapped_column(Integer, nullable=False)
    course_type: Mapped[CourseType] = mapped_column(
        String, nullable=False, default="CORE"
    )
    preferred_semester_type: Mapped[Optional[SemesterType]] = mapped_column(String)
    department_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("departments.id", ondelete="SET NULL")
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    prerequisites: Mapped[list["CoursePrerequisite"]] = relationship(
        back_populates="course",
        foreign_keys="[CoursePrerequisite.course_id]",
        cascade="all, delete",
    )

    def __repr__(self) -> str:
        return (
            f"<Course id={self.id!r} code={self.code!r} title={self.title!r} "
            f"credit_unit={self.credit_unit!r}>"
        )


class ProgramCourse(Base):
    __tablename__ = "program_courses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    program_id: Mapped[int] = mapped_column(
        ForeignKey("programs.id", ondelete="cascade"), nullable=False
    )
    course_id: Mapped[int] = mapped_column(
        ForeignKey("courses.id", ondelete="cascade"), nullable=False
    )
    level_id: Mapped[int] = mapped_column(
        ForeignKey("levels.id", ondelete="cascade"), nullable=False
    )
    is_elective: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint(
            "program_id", "course_id", "level_id", name="unique_program_course_level"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ProgramCourse id={self.id!r} program_id={self.program_id!r} "
            f"course_id={self.course_id!r} level_id={self.level_id!r}>"
        )


class CoursePrerequisite(Base):
    __tablename__ = "course_prerequisites"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    course_id: Mapped[int] = mapped_column(
        ForeignKey("courses.id", ondelete="cascade"), nullable=False
    )
    prerequisite_id: Mapped[int] = mapped_column(
        ForeignKey("courses.id", ondelete="cascade"), nullable=False
    )

    course: Mapped["Course"] = relationship(
        foreign_keys=[course_id], back_populates="prerequisites"
    )
    prerequisite: Mapped["Course"] = relationship(foreign_keys=[prerequisite_id])

    __table_args__ = (
        UniqueConstraint(
            "course_id", "prerequisite_id", name="unique_course_prerequisite"
        ),
    )

    def __repr__(self) -> str:
        return f"<CoursePrerequisite id={self.id!r} course_id={self.course_id!r} prerequisite_id={self.prerequisite_id!r}>"


class CreditUnitRequirement(Base):
    __tablename__ = "credit_unit_requirements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    program_id: Mapped[int] = mapped_column(
        ForeignKey("programs.id", ondelete="cascade"), nullable=False
    )
    level_id: Mapped[int] = mapped_column(
        ForeignKey("levels.id", ondelete="cascade"), nullable=False
    )
    semester_type: Mapped[SemesterType] = mapped_column(String, nullable=False)
    minimum_credit_units: Mapped[int] = mapped_column(Integer, nullable=False)
    maximum_credit_units: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint(
            "program_id", "level_id", "semester_type", name="unique_unit_requirement"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<CreditUnitRequirement program_id={self.program_id!r} level_id={self.level_id!r} "
            f"semester_type={self.semester_type!r} min={self.minimum_credit_units!r} "
            f"max={self.maximum_credit_units!r}>"
        )


class Student(Base):
    __tablename__ = "students"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    reg_no: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    program_id: Mapped[int] = mapped_column(
        ForeignKey("programs.id", ondelete="cascade"), nullable=False
    )
    department_id: Mapped[int] = mapped_column(
        ForeignKey("departments.id", ondelete="cascade"), nullable=False
    )
    current_level_id: Mapped[int] = mapped_column(
        ForeignKey("levels.id"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    registrations: Mapped[list["Registration"]] = relationship(
        back_populates="student", cascade="all, delete"
    )

    def __repr__(self) -> str:
        return f"<Student id={self.id!r} reg_no={self.reg_no!r} name={self.name!r}>"


class Lecturer(Base):
    __tablename__ = "lecturers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    staff_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    role: Mapped[LecturerRole] = mapped_column(
        String, nullable=False, default="LECTURER"
    )
    department_id: Mapped[int] = mapped_column(
        ForeignKey("departments.id", ondelete="cascade"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Lecturer id={self.id!r} staff_id={self.staff_id!r} role={self.role!r}>"


class IctStaff(Base):
    __tablename__ = "ict_staff"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    staff_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    can_manage_course_registration: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    can_manage_scores: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    can_manage_exams: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<IctStaff id={self.id!r} staff_id={self.staff_id!r}>"


class StaffCourse(Base):
    __tablename__ = "staff_courses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lecturer_id: Mapped[int] = mapped_column(
        ForeignKey("lecturers.id", ondelete="cascade"), nullable=False
    )
    course_id: Mapped[int] = mapped_column(
        ForeignKey("courses.id", ondelete="cascade"), nullable=False
    )
    semester_id: Mapped[int] = mapped_column(
        ForeignKey("semesters.id", ondelete="cascade"), nullable=False
    )
    season_id: Mapped[int] = mapped_column(
        ForeignKey("seasons.id", ondelete="cascade"), nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "lecturer_id",
            "course_id",
            "semester_id",
            "season_id",
            name="unique_staff_course",
        ),
    )

    def __repr__(self) -> str:
        return f"<StaffCourse lecturer_id={self.lecturer_id!r} course_id={self.course_id!r}>"


class Registration(Base):
    __tablename__ = "registrations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    student_id: Mapped[int] = mapped_column(
        ForeignKey("students.id", ondelete="cascade"), nullable=False
    )
    course_id: Mapped[int] = mapped_column(
        ForeignKey("courses.id", ondelete="cascade"), nullable=False
    )
    semester_id: Mapped[int] = mapped_column(
        ForeignKey("semesters.id", ondelete="cascade"), nullable=False
    )
    season_id: Mapped[int] = mapped_column(
        ForeignKey("seasons.id", ondelete="cascade"), nullable=False
    )
    level_id: Mapped[int] = mapped_column(ForeignKey("levels.id"), nullable=False)
    has_score: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    registered_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.now
    )

    student: Mapped["Student"] = relationship(back_populates="registrations")
    course: Mapped["Course"] = relationship()
    semester: Mapped["Semester"] = relationship()
    score: Mapped[Optional["Score"]] = relationship(
        back_populates="registration", cascade="all, delete"
    )

    __table_args__ = (
        UniqueConstraint(
            "student_id",
            "course_id",
            "semester_id",
            "season_id",
            name="unique_student_course_period",
        ),
        Index("registrations_period_idx", "student_id", "semester_id", "season_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Registration id={self.id!r} student_id={self.student_id!r} course_id={self.course_id!r} "
            f"semester_id={self.semester_id!r} season_id={self.season_id!r}>"
        )


class Score(Base):
    __tablename__ = "scores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    registration_id: Mapped[int] = mapped_column(
        ForeignKey("registrations.id", ondelete="cascade"), nullable=False, unique=True
    )
    first_ca: Mapped[Optional[float]] = mapped_column(Float)
    second_ca: Mapped[Optional[float]] = mapped_column(Float)
    exam_score: Mapped[Optional[float]] = mapped_column(Float)
    total_score: Mapped[Optional[float]] = mapped_column(Float)
    grade: Mapped[Optional[GradeLetter]] = mapped_column(String)
    point: Mapped[Optional[float]] = mapped_column(Float)
    credit_points: Mapped[Optional[float]] = mapped_column(Float)
    submitted_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("lecturers.id", ondelete="SET NULL")
    )
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    is_approved_by_examiner: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    examiner_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("lecturers.id", ondelete="SET NULL")
    )
    examiner_approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    is_accepted_by_hod: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    hod_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("lecturers.id", ondelete="SET NULL")
    )
    hod_accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    registration: Mapped["Registration"] = relationship(back_populates="score")

    def __repr__(self) -> str:
        return (
            f"<Score id={self.id!r} registration_id={self.registration_id!r} "
            f"total_score={self.total_score!r} grade={self.grade!r} "
            f"approved={self.is_approved_by_examiner!r} accepted={self.is_accepted_by_hod!r}>"
        )


class Exam(Base):
    __tablename__ = "exams"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    course_id: Mapped[int] = mapped_column(
        ForeignKey("courses.id", ondelete="cascade"), nullable=False
    )
    semester_id: Mapped[int] = mapped_column(
        ForeignKey("semesters.id", ondelete="cascade"), nullable=False
    )
    season_id: Mapped[int] = mapped_column(
        ForeignKey("seasons.id", ondelete="cascade"), nullable=False
    )
    status: Mapped[ExamStatus] = mapped_column(
        String, nullable=False, default="PENDING"
    )
    created_by_lecturer_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("lecturers.id", ondelete="SET NULL")
    )

    course: Mapped["Course"] = relationship()
    sessions: Mapped[list["ExamSession"]] = relationship(
        back_populates="exam", cascade="all, delete"
    )

    def __repr__(self) -> str:
        return f"<Exam id={self.id!r} title={self.title!r} status={self.status!r}>"


class ExamSession(Base):
    __tablename__ = "exam_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    exam_id: Mapped[int] = mapped_column(
        ForeignKey("exams.id", ondelete="cascade"), nullable=False
    )
    name: Mapped[Optional[str]] = mapped_column(String)
    max_attendees: Mapped[Optional[int]] = mapped_column(Integer)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    exam: Mapped["Exam"] = relationship(back_populates="sessions")
    assignments: Mapped[list["SeatAssignment"]] = relationship(
        back_populates="session", cascade="all, delete"
    )

    def __repr__(self) -> str:
        return (
            f"<ExamSession id={self.id!r} exam_id={self.exam_id!r} "
            f"max_attendees={self.max_attendees!r} is_active={self.is_active!r}>"
        )


class SeatAssignment(Base):
    __tablename__ = "seat_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    student_id: Mapped[int] = mapped_column(
        ForeignKey("students.id", ondelete="cascade"), nullable=False
    )
    exam_id: Mapped[int] = mapped_column(
        ForeignKey("exams.id", ondelete="cascade"), nullable=False
    )
    exam_session_id: Mapped[int] = mapped_column(
        ForeignKey("exam_sessions.id", ondelete="cascade"), nullable=False
    )
    seat_number: Mapped[Optional[str]] = mapped_column(String)
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.now
    )

    student: Mapped["Student"] = relationship()
    session: Mapped["ExamSession"] = relationship(back_populates="assignments")

    __table_args__ = (
        UniqueConstraint("student_id", "exam_id", name="unique_student_exam"),
        UniqueConstraint(
            "exam_session_id", "seat_number", name="unique_session_seat_number"
        ),
        Index("seat_assignments_session_idx", "exam_session_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<SeatAssignment id={self.id!r} student_id={self.student_id!r} "
            f"exam_session_id={self.exam_session_id!r} seat_number={self.seat_number!r}>"
        )


class ExamAttempt(Base):
    __tablename__ = "exam_attempts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    student_id: Mapped[int] = mapped_column(
        ForeignKey("students.id", ondelete="cascade"), nullable=False
    )
    exam_id: Mapped[int] = mapped_column(
        ForeignKey("exams.id", ondelete="cascade"), nullable=False
    )
    exam_session_id: Mapped[int] = mapped_column(
        ForeignKey("exam_sessions.id", ondelete="cascade"), nullable=False
    )
    started_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.now
    )
    is_submitted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint(
            "student_id", "exam_session_id", name="unique_student_session_attempt"
        ),
    )

    def __repr__(self) -> str:
        return f"<ExamAttempt id={self.id!r} student_id={self.student_id!r} exam_session_id={self.exam_session_id!r}>"
