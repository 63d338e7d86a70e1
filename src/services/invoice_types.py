
from pydantic import BaseModel

class RawRecognition(BaseModel):
    text: str = ""  # Full recognized text, possibly empty
    success: bool = False

    @property
    def has_text(self) -> bool:
        return self.success and bool(self.text.strip())
