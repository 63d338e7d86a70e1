"""
Prompt text for structured invoice extraction.

Both extraction variants share the same rules and JSON shape; the
text-assisted variant appends the recognized text (and the cedula hint when
one was found), the vision-only variant attaches the image instead.
"""

EXTRACTION_RULES = """Extract the data of this Colombian medical-imaging invoice following these rules exactly.

RULES:
1. PATIENT: the patient row reads "Paciente: [ID NUMBER] [FULL NAME] Edad: [AGE]".
   - patient_id is the number right after "Paciente:", digits only, 6 to 10 digits.
{hint_line}2. DATE: top right corner, formatted DD/MM/YYYY.
3. EPS: from the "Entidad" or "Plan" field, return the exact canonical name:
   - contains "NUEVA EPS" -> "Nueva EPS"
   - contains "ALIANZA" -> "Alianza"
   - contains "MUTUAL" -> "MUTUAL SER"
   - contains "SANITAS" -> "SANITAS"
   - contains "DISPENSARIO" -> "Dispensario Medico/Medellín"
   - contains "SALUD TOTAL" -> "Salud Total"
   If the Entidad field has none of these, search the whole document for them.
4. SERVICES: every row of the "NOMBRE" column (DOPPLER, HOLTER, ECOCARDIOGRAMA, ...).
   Remove the word "ECOGRAFIA" from each description. Do not filter services.
5. VALUES: from the last column take the complete number before the comma
   (e.g. 18360000, 25100000). Do not drop zeros and do not apply any discount.

Return only this JSON object:
{{
  "orden_servicio": "number from ORDEN DE SERVICIO",
  "fecha": "DD/MM/YYYY",
  "hospital": "hospital name from the header",
  "patient_name": "full patient name",
  "patient_id": "digits only, max 10",
  "age": "age with 'Años', 'Meses' or 'Días'",
  "sex": "Masculino or Femenino",
  "eps": "canonical EPS name",
  "plan": "plan name as printed",
  "services": [
    {{"code": "service code (e.g. 882222)", "description": "description without 'ECOGRAFIA'", "value": "original number"}}
  ]
}}"""

HINT_LINE = "   - Pre-extracted cedula from the recognized text: {hint} (use it if it matches the patient row).\n"

TEXT_SECTION = "\n\nRECOGNIZED TEXT:\n{text}"


def build_text_prompt(text: str, hint: str | None = None) -> str:
    hint_line = HINT_LINE.format(hint=hint) if hint else ""
    return EXTRACTION_RULES.format(hint_line=hint_line) + TEXT_SECTION.format(text=text)


def build_vision_prompt() -> str:
    return EXTRACTION_RULES.format(hint_line="")
