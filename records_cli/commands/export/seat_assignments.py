import os
from datetime import datetime

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from sqlalchemy.orm import Session

from records_cli import auth
from records_cli.commands.seats.allocate import load_exam
from records_cli.models import ExamSession, SeatAssignment, Student
from records_cli.utils.logging_config import get_logger

logger = get_logger(__name__)

HEADERS = ["Reg No", "Student Name", "Seat", "Assigned At"]


def _sheet_title(session: ExamSession, taken: list) -> str:
    title = (session.name or f"Session {session.id}")[:31]
    for char in "[]:*?/\\":
        title = title.replace(char, "-")
    if title in taken:
        title = f"{title[:26]}_{session.id}"
    return title


def export_seat_assignments(
    db: Session, exam_id: int, principal: auth.Principal, output_dir: str = "exports"
) -> str:
    """
    Write the exam's seat assignments to a workbook, one sheet per session.

    Returns:
        Path of the written .xlsx file
    """
    exam = load_exam(db, exam_id)
    auth.can_manage_exam(db, principal, exam).require()
    sessions = (
        db.query(ExamSession)
        .filter(ExamSession.exam_id == exam.id)
        .order_by(ExamSession.id)
        .all()
    )

    os.makedirs(output_dir, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    excel_path = os.path.join(output_dir, f"seats_{exam.course.code}_{timestamp}.xlsx")

    wb = Workbook()
    if wb.active:
        wb.remove(wb.active)

    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill(
        start_color="366092", end_color="366092", fill_type="solid"
    )
    total = 0

    for session in sessions:
        rows = (
            db.query(SeatAssignment, Student)
            .join(Student, Student.id == SeatAssignment.student_id)
            .filter(SeatAssignment.exam_session_id == session.id)
            .order_by(Student.reg_no)
            .all()
        )
        total += len(rows)

        ws = wb.create_sheet(title=_sheet_title(session, wb.sheetnames))
        for col, header in enumerate(HEADERS, 1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.font = header_font
            cell.fill = header_fill

        for row, (assignment, student) in enumerate(rows, 2):
            ws.cell(row=row, column=1, value=student.reg_no)
            ws.cell(row=row, column=2, value=student.name)
            ws.cell(row=row, column=3, value=assignment.seat_number or "")
            ws.cell(
                row=row,
                column=4,
                value=assignment.assigned_at.strftime("%Y-%m-%d %H:%M"),
            )

        for col in range(1, len(HEADERS) + 1):
            column_letter = get_column_letter(col)
            max_length = max(len(str(cell.value or "")) for cell in ws[column_letter])
            ws.column_dimensions[column_letter].width = min(max_length + 2, 50)

    if not wb.sheetnames:
        ws = wb.create_sheet(title="No Sessions")
        ws.cell(row=1, column=1, value=f"Exam {exam.id} has no sessions")

    wb.save(excel_path)
    logger.info(f"Exported {total} seat assignments for exam {exam.id} to {excel_path}")
    return excel_path
