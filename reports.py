import textwrap
from datetime import date

from fpdf import FPDF
from fpdf.enums import XPos, YPos

MONTHS = ["January", "February", "March", "April", "May", "June",
          "July", "August", "September", "October", "November", "December"]


def format_minutes(total_minutes):
    if total_minutes is None:
        return "--"
    total_minutes = max(0, int(total_minutes))
    hours = total_minutes // 60
    minutes = total_minutes % 60
    return f"{hours}:{minutes:02d}"


def latin1(text):
    # core PDF fonts only cover latin-1
    return text.encode("latin-1", "replace").decode("latin-1")


def collect_report_rows(store, user_id, start, end):
    """One row per date in [start, end] that has tasks or focus stats."""
    tasks = store.select('tasks', user_id, gte={'scheduled_date': start}, lte={'scheduled_date': end},
                         columns=['scheduled_date', 'text', 'completed'], order_by=['scheduled_date', 'id'])
    stats = store.select('daily_stats', user_id, gte={'date': start}, lte={'date': end})
    for result in (tasks, stats):
        if not result.ok:
            raise ValueError(result.error)

    rows = {}

    def row_for(day):
        return rows.setdefault(day, {
            'date_raw': day,
            'tasks': [],
            'tasks_done': 0,
            'tasks_total': 0,
            'focus_minutes': 0,
            'sessions': 0,
        })

    for task in tasks.data:
        row = row_for(task['scheduled_date'])
        row['tasks_total'] += 1
        if task['completed']:
            row['tasks_done'] += 1
            row['tasks'].append(task['text'])
    for stat in stats.data:
        row = row_for(stat['date'])
        row['focus_minutes'] = stat['total_focus_minutes']
        row['sessions'] = stat['sessions_completed']
    return [rows[day] for day in sorted(rows)]


def add_focus_report_table(pdf, rows):
    col_widths = [40, 90, 20, 22, 18]
    headers = ["Date", "Completed tasks", "Done", "Focus", "Sessions"]
    line_height = 6

    def render_header():
        pdf.set_fill_color(30, 41, 59)  # Slate 800
        pdf.set_text_color(255, 255, 255)
        pdf.set_font("Helvetica", style="B", size=10)
        for idx, header in enumerate(headers):
            pdf.cell(col_widths[idx], 10, header, border=0, align="C", fill=True)
        pdf.ln(10)
        pdf.set_text_color(0, 0, 0)

    render_header()

    if not rows:
        pdf.set_font("Helvetica", size=10)
        pdf.cell(sum(col_widths), 10, "No activity in selected period.", border=1, align="L")
        pdf.ln(10)
        return

    current_month = None
    totals = {'done': 0, 'total': 0, 'minutes': 0, 'sessions': 0}

    for idx, row in enumerate(rows):
        row_date = date.fromisoformat(row["date_raw"])
        row_month = row_date.strftime("%Y-%m")
        if row_month != current_month:
            current_month = row_month
            pdf.ln(2)
            pdf.set_fill_color(241, 245, 249)  # Slate 100
            pdf.set_font("Helvetica", style="B", size=11)
            pdf.cell(sum(col_widths), 10, f"{MONTHS[row_date.month - 1]} {row_date.year}",
                     border="B", align="L", fill=True)
            pdf.ln(10)

        tasks_text = latin1("; ".join(row["tasks"])) if row["tasks"] else "-"
        tasks_lines = textwrap.wrap(tasks_text, width=48) or ["-"]
        row_height = max(line_height * len(tasks_lines), 9)

        if pdf.get_y() + row_height > 270:
            pdf.add_page()
            render_header()

        if idx % 2 == 0:
            pdf.set_fill_color(255, 255, 255)
        else:
            pdf.set_fill_color(252, 252, 252)

        x, y = pdf.get_x(), pdf.get_y()
        pdf.set_font("Helvetica", size=10)
        pdf.multi_cell(col_widths[0], row_height, row_date.strftime("%a %d.%m.%Y"),
                       border="B", align="L", fill=True)
        pdf.set_xy(x + col_widths[0], y)
        pdf.multi_cell(col_widths[1], line_height if len(tasks_lines) > 1 else row_height,
                       "\n".join(tasks_lines), border="B", align="L", fill=True)
        pdf.set_xy(x + col_widths[0] + col_widths[1], y)
        pdf.cell(col_widths[2], row_height, f"{row['tasks_done']}/{row['tasks_total']}",
                 border="B", align="R", fill=True)
        pdf.cell(col_widths[3], row_height, format_minutes(row["focus_minutes"]),
                 border="B", align="R", fill=True)
        pdf.cell(col_widths[4], row_height, str(row["sessions"]), border="B", align="R", fill=True)
        pdf.set_xy(x, y + row_height)

        totals['done'] += row['tasks_done']
        totals['total'] += row['tasks_total']
        totals['minutes'] += row['focus_minutes']
        totals['sessions'] += row['sessions']

    pdf.set_fill_color(248, 250, 252)  # Slate 50
    pdf.set_font("Helvetica", style="B", size=9)
    pdf.cell(col_widths[0] + col_widths[1], 9, "Total", border=1, align="L", fill=True)
    pdf.cell(col_widths[2], 9, f"{totals['done']}/{totals['total']}", border=1, align="R", fill=True)
    pdf.cell(col_widths[3], 9, format_minutes(totals['minutes']), border=1, align="R", fill=True)
    pdf.cell(col_widths[4], 9, str(totals['sessions']), border=1, align="R", fill=True)
    pdf.ln(9)


def build_focus_report(rows, start_date, end_date, reporter_name=""):
    pdf = FPDF()
    pdf.set_auto_page_break(auto=True, margin=15)
    pdf.add_page()

    if reporter_name:
        pdf.set_font("Helvetica", size=11)
        pdf.cell(0, 8, latin1(reporter_name), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        pdf.ln(2)

    pdf.set_font("Helvetica", style="B", size=16)
    pdf.cell(0, 10, "Focus report", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.set_font("Helvetica", size=10)
    pdf.set_text_color(100, 100, 100)
    pdf.cell(0, 6, f"Period: {start_date} to {end_date}", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.ln(6)
    pdf.set_text_color(0, 0, 0)

    add_focus_report_table(pdf, rows)

    pdf_bytes = pdf.output()
    return bytes(pdf_bytes) if isinstance(pdf_bytes, (bytes, bytearray)) else pdf_bytes.encode("latin-1")
