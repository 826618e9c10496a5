# Import all models here
from mealvision.models.meal_analysis import MealAnalysis
from mealvision.models.chat import ChatHistory, ChatMessage
