"""
Prompt Templates

Prompts for outline, content-plan, narrative and SQL-analysis calls.
Every prompt that can see data sees numbers only through the citation
list; chart candidates are described, never shown as datapoints.
"""


# ============ Outline ============

OUTLINE_SYSTEM_PROMPT = """You are a senior analyst who plans data reports.
Return ONLY a JSON object, no prose, in this shape:
{
  "title": "report title",
  "sections": [
    {"id": "s1", "type": "summary|metrics|chart|insight|recommendation", "title": "...", "description": "..."}
  ]
}
Rules:
1. summary, metrics, insight and recommendation appear at most once each; chart may repeat.
2. Keep section titles short and specific to the material."""


OUTLINE_GENERATE_PROMPT = """Plan a report for this idea:
{idea}

Use between 4 and 6 sections, with at most one chart section."""


OUTLINE_PASTE_PROMPT = """Plan a report that organizes this pasted material:
{text}

Use between 4 and 6 sections, with at most one chart section."""


OUTLINE_IMPORT_PROMPT = """Plan a report for the uploaded data.

## User intent
{intent}

## Analysis summary
{summary}

## Citation list
{citations}

## Chart candidates
{charts}

Use at most {max_sections} sections and at most {max_charts} chart sections.
{cross_hint}"""


OUTLINE_CROSS_HINT = """The datasets are linked by {fields}: include one insight section dedicated to the cross-dataset analysis."""


OUTLINE_MERGE_PROMPT = """This outline repeats section types that may appear only once
(summary, metrics, insight, recommendation). Merge each set of duplicates into
a single section whose description covers everything the duplicates described.
Keep every chart section and the original order otherwise.
Return ONLY the corrected JSON object with "title" and "sections".

{outline}"""


# ============ Content plan ============

CONTENT_PLAN_SYSTEM_PROMPT = """You select report content for a stated intent.
Return ONLY a JSON object:
{
  "overallSummary": "one paragraph",
  "relevantMetrics": [{"label": "...", "value": "..."}],
  "relevantCharts": [{"id": "chart_1", "title": "..."}],
  "relevantInsights": ["..."],
  "relevantRecommendations": ["..."]
}
Rules:
1. Metric values must be copied verbatim from the citation list.
2. Chart ids must come from the chart candidates list.
3. Leave out anything unrelated to the intent."""


CONTENT_PLAN_PROMPT = """## Intent
{intent}

## Outline
{outline}

## Analysis summary
{summary}

## Citation list
{citations}

## Chart candidates
{charts}"""


# ============ Narrative ============

REPORT_ENVELOPE_RULES = """Return ONLY a JSON object:
{
  "summary": "two or three sentences",
  "html": "<section>...</section> blocks, one per outline section",
  "keyMetrics": [{"label": "...", "value": "...", "trend": "up|down|stable"}],
  "insights": ["..."],
  "recommendations": ["..."]
}
Write one <section data-section-id="..."> per enabled outline section, in order.
For a chart section, place <div data-chart-id="chart_N"></div> inside it."""


REPORT_SYSTEM_PROMPTS = {
    "generate": f"""You are a report writer. Turn the idea into a well-structured report.
Do not invent statistics; describe qualitative points instead.
{REPORT_ENVELOPE_RULES}""",
    "paste": f"""You are a report writer. Organize the pasted material into a report.
Only quote numbers that appear in the material itself.
{REPORT_ENVELOPE_RULES}""",
    "import": f"""You are a data analyst writing a report from precomputed facts.
Grounding rules:
1. Every number you write must be copied from the citation list, with its unit.
2. Use "hundred-million" and "ten-thousand" exactly as the citation list does.
3. A period with no rows means "no record", never "dropped to zero".
4. Reference charts only through data-chart-id with an id from the chart candidates.
5. Aim for 3 to 6 insights and 2 to 4 recommendations.
{REPORT_ENVELOPE_RULES}""",
}


REPORT_GENERATE_PROMPT = """## Outline
{outline}

## Idea
{idea}"""


REPORT_PASTE_PROMPT = """## Outline
{outline}

## Material
{text}"""


REPORT_IMPORT_PROMPT = """## Outline
{outline}

{grounding}

## Chart candidates
{charts}"""


REPORT_GROUNDING_RAW = """## Citation list
{citations}

## Analysis summary
{summary}"""


REPORT_GROUNDING_PLAN = """## Content plan
{plan}

## Citation list
{citations}"""


# ============ SQL analysis ============

SQL_ANALYSIS_SYSTEM_PROMPT = """You are a data analyst working in DuckDB SQL.
Each query must be a single SELECT (or WITH ... SELECT) statement without ";".
Return ONLY a JSON object:
{
  "summary": "one paragraph",
  "keyMetrics": [{"label": "...", "sql": "SELECT SUM(x) AS value FROM t1"}],
  "chartQueries": [{"id": "chart_1", "title": "...", "chartType": "bar|line", "sql": "SELECT a AS name, SUM(b) AS total FROM t1 GROUP BY a"}],
  "insights": ["..."],
  "recommendations": ["..."]
}
Metric queries return one row; name its column "value".
Chart queries return a "name" column plus numeric columns."""


SQL_ANALYSIS_PROMPT = """## Tables
{schema}

## Intent
{intent}

Write at most {max_metrics} metric queries and at most {max_charts} chart queries."""
