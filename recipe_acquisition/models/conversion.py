"""
Kid-friendly conversion response models.
The model's JSON is checked against these shapes before it is accepted.
"""
from typing import List, Optional, Union

from pydantic import BaseModel, Field


class SimplifiedIngredient(BaseModel):
    id: str
    name: str
    kid_friendly_name: str = Field(alias="kidFriendlyName")
    amount: Optional[Union[float, str]] = None
    unit: Optional[str] = None
    description: Optional[str] = None
    order: int

    model_config = {"populate_by_name": True}


class SimplifiedStep(BaseModel):
    id: str
    step: str
    kid_friendly_text: str = Field(alias="kidFriendlyText")
    safety_note: Optional[str] = Field(default=None, alias="safetyNote")
    adult_supervision: bool = Field(default=False, alias="adultSupervision")
    time: Optional[str] = None
    order: int
    completed: bool = False
    difficulty: str = "easy"
    encouragement: Optional[str] = None

    model_config = {"populate_by_name": True}


class KidRecipeConversion(BaseModel):
    """Validated conversion of a recipe for a young cook."""
    simplified_ingredients: List[SimplifiedIngredient] = Field(alias="simplifiedIngredients")
    simplified_steps: List[SimplifiedStep] = Field(alias="simplifiedSteps")
    safety_notes: List[str] = Field(alias="safetyNotes")
    estimated_duration: Optional[Union[int, str]] = Field(default=None, alias="estimatedDuration")
    skills_required: List[str] = Field(default_factory=list, alias="skillsRequired")

    model_config = {"populate_by_name": True}
