"""Creates a ready-to-fill prompt chain sheet."""
from __future__ import annotations

from pathlib import Path

from openpyxl.styles import Alignment, Font
from openpyxl.worksheet.datavalidation import DataValidation

from CELLMIND.writing.sinks import open_for_update

TEMPLATE_SHEET = "Prompt Chain Template"

TEMPLATE_HEADERS = ["Prompt", "Data Range", "Include Previous Result", "Notes"]

TEMPLATE_EXAMPLES = [
    ["Analyze this data and identify the top 3 trends", "Sheet1!A1:F20", "NO", "Initial analysis of raw data"],
    ["Based on the above analysis, explain possible causes for these trends", "", "YES", "Cause analysis based on step 1"],
    ["Create recommendations based on the identified trends and causes", "", "YES", "Derive recommendations from steps 1+2"],
    ["Summarize all findings and recommendations in a concise executive summary", "", "YES", "Final conclusion for management"],
]

TEMPLATE_HELP = (
    "DATA RANGE REFERENCES:\n"
    "- Single sheet: Sheet1!A1:F20\n"
    "- Named range: NamedRange\n"
    "- Current sheet: A1:D10\n"
    "- Leave empty for no additional data\n\n"
    "INCLUDE PREVIOUS RESULT:\n"
    "- YES: Result from previous step will be included in this prompt\n"
    "- NO: Prompt will be executed without previous result\n\n"
    "After filling in, run: cellmind run <workbook> --sheet \"Prompt Chain Template\""
)

REFERENCE_EXAMPLES = [
    ["Type", "Example", "Description", "Usage"],
    ["Simple Range", "A1:D10", "Range in current sheet", "For data in current sheet"],
    ["Sheet Reference", "Sheet1!A1:F20", "Range in another sheet", "For data in other sheets"],
    ["Named Range", "MyRange", "Named range in spreadsheet", "For predefined data ranges"],
]


def write_template(workbook_path: Path, sheet_name: str = TEMPLATE_SHEET, overwrite: bool = False) -> str:
    """Write the template sheet and return its final title.

    An existing sheet of the same name is cleared when ``overwrite`` is set,
    otherwise it is renamed to ``"<name> (old)"`` and a fresh sheet is created.
    """
    workbook_path = Path(workbook_path)
    is_new = not workbook_path.exists()
    workbook = open_for_update(workbook_path)
    if is_new:
        workbook.active.title = "Sheet1"

    if sheet_name in workbook.sheetnames:
        existing = workbook[sheet_name]
        if overwrite:
            index = workbook.sheetnames.index(sheet_name)
            workbook.remove(existing)
            sheet = workbook.create_sheet(sheet_name, index)
        else:
            existing.title = f"{sheet_name} (old)"[:31]
            sheet = workbook.create_sheet(sheet_name)
    else:
        sheet = workbook.create_sheet(sheet_name)

    sheet.append(TEMPLATE_HEADERS)
    for cell in sheet[1]:
        cell.font = Font(bold=True)
    for row in TEMPLATE_EXAMPLES:
        sheet.append(row)

    sheet.column_dimensions["A"].width = 60
    sheet.column_dimensions["B"].width = 25
    sheet.column_dimensions["C"].width = 25
    sheet.column_dimensions["D"].width = 35

    # help sits right of the chain columns so it is never read as a prompt row
    sheet["F1"] = "HELP: How to use this template"
    sheet["F1"].font = Font(bold=True)
    sheet.merge_cells("F1:I1")
    sheet["F2"] = TEMPLATE_HELP
    sheet["F2"].alignment = Alignment(wrap_text=True, vertical="top")
    sheet.merge_cells("F2:I10")

    sheet["F12"] = "EXAMPLES OF DATA RANGE REFERENCES:"
    sheet["F12"].font = Font(bold=True)
    sheet.merge_cells("F12:I12")
    for offset, row in enumerate(REFERENCE_EXAMPLES):
        for col, value in enumerate(row, start=6):
            sheet.cell(row=13 + offset, column=col, value=value)

    validation = DataValidation(type="list", formula1='"YES,NO"', allow_blank=True)
    sheet.add_data_validation(validation)
    validation.add("C2:C100")

    workbook.active = workbook.sheetnames.index(sheet.title)
    workbook.save(workbook_path)
    return sheet.title
