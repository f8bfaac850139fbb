"""Prompts sent to the recognition and merge models."""

OCR_PROMPT_TEMPLATE = """You are an OCR system specialised in {language} source code. Extract the code shown in this IDE screenshot.

IGNORE these visual elements:
- Line numbers and gutter icons (breakpoints, folding arrows, VCS markers)
- Tabs, file names, breadcrumbs, scrollbars, status bar and minimap
- Syntax highlighting colours

RULES:
1. Output only the code. No explanations, no markdown, no code fences.
2. Every character matters: letters, digits and symbols must match the screenshot.
3. Keep the original indentation, using spaces.
4. Include everything visible: package and import lines, annotations, comments and doc comments.
5. Resolve ambiguous glyphs with the language's syntax: l/1/I, O/0, ;/:, (/{{/[, @ for annotations,
   < > for generics, -> for lambdas, :: for method references.
6. If a line is cut off at the edge, output only the visible part. Never invent hidden code.
7. Keep string literals exactly, including escape sequences.

Start immediately with the first visible character of code."""

MERGE_PROMPT_TEMPLATE = """You are an expert {language} developer. The snippets below were extracted, in order, from consecutive screenshots taken while scrolling through source code. Merge them into complete source files.

RULES:
1. Adjacent snippets usually overlap: when the end of one snippet repeats the start of the next, keep a single copy.
2. Keep the structure in order: package, imports, type declaration, fields, constructors, methods.
3. Fix obvious OCR artifacts (missing semicolons, misread characters) using {language} syntax.
4. Join blocks and methods that were split across snippets.
5. If the snippets contain several files, separate them with a line of the form:
   // ========== FileName ==========
6. Lines starting with "// --- Image" are snippet markers. Drop them, except keep
   ERROR markers as comments so missing screenshots remain visible.

Output the merged code only. No explanations, no markdown code fences.

CODE SNIPPETS TO MERGE:
{snippets}"""


def build_ocr_prompt(language: str) -> str:
    return OCR_PROMPT_TEMPLATE.format(language=language)


def build_merge_prompt(language: str, snippets: list[str]) -> str:
    return MERGE_PROMPT_TEMPLATE.format(language=language, snippets="\n\n".join(snippets))
