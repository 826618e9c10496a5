from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Float, Text, DateTime, JSON
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import relationship
from mealvision.database import Base

# text[] / jsonb on Postgres, plain JSON elsewhere (SQLite in tests)
TextArray = ARRAY(Text).with_variant(JSON(), "sqlite")
JsonDocument = JSONB().with_variant(JSON(), "sqlite")


def utc_now():
    return datetime.now(timezone.utc)


class MealAnalysis(Base):
    __tablename__ = "meal_analyses"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)  # auth backend user id (JWT sub)

    detected_dishes = Column(TextArray, nullable=False, default=list)
    food_items = Column(TextArray, nullable=False, default=list)
    calories = Column(Float, nullable=False, default=0.0)
    portions = Column(JsonDocument, nullable=False, default=dict)   # {"rice": 150, ...}
    nutrients = Column(JsonDocument, nullable=False, default=dict)  # {protein, fat, carbs, vitamins, minerals}
    deficient_nutrients = Column(TextArray, nullable=False, default=list)
    excessive_nutrients = Column(TextArray, nullable=False, default=list)
    improvements = Column(TextArray, nullable=False, default=list)
    image_url = Column(String(1024), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)

    chat_histories = relationship("ChatHistory", back_populates="analysis")
