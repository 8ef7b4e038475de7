from __future__ import annotations

from typing import Union

from pydantic import BaseModel, StrictFloat, StrictInt, StrictStr


class SubmitRequest(BaseModel):
    year: StrictInt
    day: StrictInt
    part: StrictInt
    solution: Union[StrictInt, StrictFloat, StrictStr]


class SubmitResponse(BaseModel):
    correct: bool
