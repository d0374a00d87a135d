"""
AI prompts for newspaper page extraction.

The newspaper is published in Korean, so prompts are written in Korean and
ask for answers in Korean.
"""

# Editorial categories the model is nudged toward; storage accepts any label
ARTICLE_TYPES = (
    "행사", "간증", "선교", "말씀", "컬럼", "샘물", "절기", "수련회", "양육프로그램",
    "성찬식", "세례식", "장례식", "찬양", "교회학교", "청년부", "부흥회",
    "특별새벽기도회", "큐티",
)


class ExtractionPrompts:
    """Collection of AI prompts for page extraction."""

    @staticmethod
    def page_ocr() -> str:
        """Prompt for transcribing a scanned page image."""
        return (
            "이 이미지는 한국어 교회 신문 페이지입니다. "
            "이미지에 있는 모든 텍스트를 빠짐없이 정확하게 추출해주세요. "
            "제목, 본문, 캡션을 읽는 순서대로 적고, 설명이나 요약은 덧붙이지 마세요."
        )

    @staticmethod
    def article_structure(text: str, page_number: int) -> str:
        """Prompt for turning OCR text into structured article JSON."""
        types = ", ".join(ARTICLE_TYPES)
        return f"""다음은 교회 신문 {page_number}면의 OCR 추출 텍스트입니다. 아래 형식의 JSON 객체 하나로만 응답해주세요.

{{
  "title": "기사 제목",
  "content": "전체 기사 내용",
  "summary": "기사 내용 요약 (2-3문장)",
  "articleType": "기사 유형 ({types} 등)",
  "author": "글쓴이 또는 기자 이름 (없으면 null)",
  "events": [
    {{
      "type": "이벤트 유형",
      "date": "YYYY-MM-DD 형식의 날짜 (없으면 null)",
      "title": "이벤트 제목",
      "description": "이벤트 설명",
      "location": "장소 (없으면 null)",
      "participants": ["참여자 이름"]
    }}
  ]
}}

OCR 텍스트:
{text}"""

    @staticmethod
    def json_only_suffix() -> str:
        return "\n\nJSON 형식으로만 응답해주세요."
