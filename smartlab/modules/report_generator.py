"""
Report Generator Module - Smart City Lab Admin Dashboard

This module handles report generation and data export for the dashboard.
Reports are built in memory and returned as bytes so the API can stream
them; they can also be written to the export folder.

Features:
- Plain-text daily attendance report
- Student attendance & marks report (CSV or Excel)
- Student roster export
- Paper attendance record export (Excel)
- Daily attendance PDF report
- Marks storage
"""

import csv
import io
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from smartlab.modules.database_manager import timestamp_of

MARKS_COLLECTION = 'marks'
MARKS_DOCUMENT = 'summary'

MIMETYPES = {
    'csv': 'text/csv',
    'excel': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    'pdf': 'application/pdf',
}

EXTENSIONS = {'csv': 'csv', 'excel': 'xlsx', 'pdf': 'pdf'}

STUDENT_EXPORT_COLUMNS = ['Name', 'Roll No', 'Email', 'Phone', 'Username', 'Password',
                          'QR ID', 'Year', 'Backlogs', 'Upload Date']


def generate_daily_report_csv(record: Dict[str, Any]) -> str:
    """
    Plain-text report of one day's attendance.

    Args:
        record (dict): Attendance document (date, counts, roll lists)

    Returns:
        str: Report lines joined with newlines
    """
    present = record.get('presentStudents') or []
    absent = record.get('absentStudents') or []
    present_count = record.get('presentCount') or 0
    absent_count = record.get('absentCount') or 0

    lines = [
        f"Attendance Report - {record.get('date', '')}",
        '',
        f"Total Students: {present_count + absent_count}",
        f"Present: {present_count}",
        f"Absent: {absent_count}",
        '',
        'PRESENT STUDENTS',
        *present,
        '',
        'ABSENT STUDENTS',
        *absent,
    ]
    return '\n'.join(lines)


def student_statistics_rows(stats: List[Dict[str, Any]],
                            marks: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    marks = marks or {}
    return [
        {
            'Roll No': s['rollNo'],
            'Name': s['name'],
            'Days Present': s['daysPresent'],
            'Days Absent': s['daysAbsent'],
            'Total': s['daysPresent'] + s['daysAbsent'],
            'Marks': marks.get(s['rollNo']) or '-',
        }
        for s in stats
    ]


class ReportGenerator:
    """
    Report and export builder.
    """

    def __init__(self, database_manager, output_dir: Optional[str] = None):
        """
        Initialize the report generator.

        Args:
            database_manager: Database manager instance
            output_dir (str): Folder used by save_report, 'exports' by default
        """
        self.db = database_manager
        self.logger = logging.getLogger(__name__)

        self.output_dir = str(output_dir or 'exports')
        self.supported_formats = ['excel', 'csv', 'pdf']

    def _result(self, name: str, output_format: str, content: bytes) -> Dict[str, Any]:
        return {
            'success': True,
            'filename': f"{name}.{EXTENSIONS[output_format]}",
            'format': output_format,
            'mimetype': MIMETYPES[output_format],
            'content': content,
            'size': len(content),
        }

    def _frame_to_bytes(self, frame: pd.DataFrame, output_format: str, sheet_name: str,
                        header: bool = True) -> bytes:
        if output_format == 'excel':
            buffer = io.BytesIO()
            with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
                frame.to_excel(writer, sheet_name=sheet_name, index=False, header=header)
            return buffer.getvalue()
        return frame.to_csv(index=False, header=header, quoting=csv.QUOTE_MINIMAL).encode('utf-8')

    def export_daily_report(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Daily attendance text report as a downloadable CSV file."""
        content = generate_daily_report_csv(record).encode('utf-8')
        return self._result(f"attendance-{record.get('date', '')}", 'csv', content)

    def export_student_statistics(self, stats: List[Dict[str, Any]], marks: Optional[Dict[str, Any]] = None,
                                  output_format: str = 'csv') -> Dict[str, Any]:
        """
        Export the attendance & marks report.

        Args:
            stats (List[dict]): Output of compute_student_statistics
            marks (dict): Marks by roll number
            output_format (str): ``csv`` or ``excel``

        Returns:
            Dict[str, Any]: File result with ``content`` bytes
        """
        if output_format not in ('csv', 'excel'):
            return {'success': False, 'error': f'Unsupported output format: {output_format}'}

        try:
            rows = student_statistics_rows(stats, marks)
            frame = pd.DataFrame(rows, columns=['Roll No', 'Name', 'Days Present', 'Days Absent',
                                                'Total', 'Marks'])
            today = datetime.now(timezone.utc).strftime('%Y-%m-%d')

            if output_format == 'csv':
                preamble = '\n'.join([
                    'Student Attendance & Marks Report',
                    f"Generated: {today}",
                    '',
                ]) + '\n'
                content = (preamble + frame.to_csv(index=False)).encode('utf-8')
            else:
                content = self._frame_to_bytes(frame, 'excel', 'Attendance & Marks')

            return self._result(f"attendance-marks-report-{today}", output_format, content)

        except Exception as e:
            self.logger.error(f"Student report generation failed: {str(e)}")
            return {'success': False, 'error': str(e)}

    def export_students(self, students: List[Dict[str, Any]], output_format: str = 'csv') -> Dict[str, Any]:
        """
        Export the student roster with credentials.
        """
        try:
            rows = []
            for s in students:
                uploaded = s.get('createdAt')
                upload_date = (datetime.fromtimestamp(timestamp_of(uploaded), tz=timezone.utc).strftime('%m/%d/%Y')
                               if uploaded else '')
                rows.append([
                    s.get('name', ''), s.get('rollNo', ''), s.get('email') or '', s.get('phoneNo') or '',
                    s.get('username') or s.get('email') or '', s.get('password') or s.get('passwordHash') or '',
                    s.get('qrId') or '', s.get('year') or '', s.get('backlogs') or '', upload_date,
                ])

            frame = pd.DataFrame(rows, columns=STUDENT_EXPORT_COLUMNS)
            today = datetime.now(timezone.utc).strftime('%Y-%m-%d')
            if output_format == 'csv':
                content = frame.to_csv(index=False, quoting=csv.QUOTE_NONNUMERIC).encode('utf-8')
            else:
                content = self._frame_to_bytes(frame, 'excel', 'Students')
            return self._result(f"students-{today}", output_format, content)

        except Exception as e:
            self.logger.error(f"Student export failed: {str(e)}")
            return {'success': False, 'error': str(e)}

    def export_paper_attendance(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """
        Export a paper attendance record as a one-column Excel sheet.
        """
        try:
            rows = [
                ['Date', record.get('date', '')],
                ['Time', record.get('time', '')],
                [],
                ['PRESENT STUDENTS'],
                *[[s] for s in record.get('presentStudents') or []],
                [],
                ['ABSENT STUDENTS'],
                *[[s] for s in record.get('absentStudents') or []],
                [],
                ['Summary'],
                ['Total Students', record.get('totalStudents', 0)],
                ['Present', record.get('presentCount', 0)],
                ['Absent', record.get('absentCount', 0)],
            ]
            frame = pd.DataFrame(rows)
            content = self._frame_to_bytes(frame, 'excel', 'Attendance', header=False)
            return self._result(f"Attendance-{record.get('date', '')}", 'excel', content)

        except Exception as e:
            self.logger.error(f"Paper attendance export failed: {str(e)}")
            return {'success': False, 'error': str(e)}

    def generate_daily_report_pdf(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """
        Generate the PDF version of a daily attendance report.

        Args:
            record (dict): Attendance document

        Returns:
            Dict[str, Any]: File result with ``content`` bytes
        """
        try:
            buffer = io.BytesIO()
            doc = SimpleDocTemplate(buffer, pagesize=A4)
            elements = []
            styles = getSampleStyleSheet()

            title_style = ParagraphStyle(
                'ReportTitle',
                parent=styles['Heading1'],
                fontSize=16,
                spaceAfter=20,
                alignment=1  # Center alignment
            )
            elements.append(Paragraph(f"Attendance Report - {record.get('date', '')}", title_style))

            present = record.get('presentStudents') or []
            absent = record.get('absentStudents') or []

            info_data = [
                ['Time:', str(record.get('time') or '')],
                ['Total Students:', str(record.get('totalStudents') or len(present) + len(absent))],
                ['Present:', str(record.get('presentCount', len(present)))],
                ['Absent:', str(record.get('absentCount', len(absent)))],
            ]
            info_table = Table(info_data)
            info_table.setStyle(TableStyle([
                ('BACKGROUND', (0, 0), (-1, -1), colors.lightgrey),
                ('FONTNAME', (0, 0), (-1, -1), 'Helvetica'),
                ('FONTSIZE', (0, 0), (-1, -1), 10),
                ('GRID', (0, 0), (-1, -1), 1, colors.black)
            ]))
            elements.append(info_table)
            elements.append(Spacer(1, 20))

            for heading, students in (('PRESENT STUDENTS', present), ('ABSENT STUDENTS', absent)):
                elements.append(Paragraph(heading, styles['Heading2']))
                table = Table([['Student']] + ([[str(s)] for s in students] or [['-']]))
                table.setStyle(TableStyle([
                    ('BACKGROUND', (0, 0), (-1, 0), colors.grey),
                    ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
                    ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
                    ('FONTSIZE', (0, 0), (-1, -1), 9),
                    ('GRID', (0, 0), (-1, -1), 1, colors.black)
                ]))
                elements.append(table)
                elements.append(Spacer(1, 15))

            doc.build(elements)
            return self._result(f"Attendance-{record.get('date', '')}", 'pdf', buffer.getvalue())

        except Exception as e:
            self.logger.error(f"PDF report generation failed: {str(e)}")
            return {'success': False, 'error': str(e)}

    def save_report(self, result: Dict[str, Any]) -> Dict[str, Any]:
        """
        Write a generated report into the export folder.

        Returns:
            Dict[str, Any]: The result with ``filepath`` added
        """
        if not result.get('success'):
            return result

        try:
            os.makedirs(self.output_dir, exist_ok=True)
            filepath = os.path.join(self.output_dir, result['filename'])
            with open(filepath, 'wb') as f:
                f.write(result['content'])
            self.logger.info(f"Report saved: {filepath}")
            return dict(result, filepath=filepath)
        except Exception as e:
            self.logger.error(f"Failed to save report {result.get('filename')}: {str(e)}")
            return {'success': False, 'error': str(e)}

    def save_marks(self, marks: Dict[str, Any]) -> Dict[str, Any]:
        """Store marks by roll number in ``marks/summary``."""
        try:
            self.db.set_document(MARKS_COLLECTION, MARKS_DOCUMENT, dict(marks or {}))
            return {'success': True, 'message': 'Marks saved successfully!'}
        except Exception as e:
            self.logger.error(f"Error saving marks: {str(e)}")
            return {'success': False, 'error': f'Error saving marks: {str(e)}'}

    def get_marks(self) -> Dict[str, Any]:
        try:
            marks = self.db.get_document(MARKS_COLLECTION, MARKS_DOCUMENT) or {}
            marks.pop('id', None)
            return marks
        except Exception as e:
            self.logger.error(f"Error loading marks: {str(e)}")
            return {}
