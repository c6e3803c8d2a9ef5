"""
Body metrics calculations
"""
from typing import Any, Dict, List, Optional


def calculate_bmi(weight_kg: float, height_cm: float) -> float:
    """
    Body mass index rounded to 2 decimals

    Raises:
        ValueError: If weight or height is not positive
    """
    if weight_kg <= 0 or height_cm <= 0:
        raise ValueError("Weight and height must be positive values")
    height_m = height_cm / 100
    return round(weight_kg / (height_m * height_m), 2)


def get_bmi_category(bmi: float) -> str:
    if bmi < 18.5:
        return "Underweight"
    if bmi < 25:
        return "Normal weight"
    if bmi < 30:
        return "Overweight"
    return "Obesity"


def _harris_benedict_male(weight_kg: float, height_cm: float, age: int) -> float:
    return 88.362 + (13.397 * weight_kg) + (4.799 * height_cm) - (5.677 * age)


def _harris_benedict_female(weight_kg: float, height_cm: float, age: int) -> float:
    return 447.593 + (9.247 * weight_kg) + (3.098 * height_cm) - (4.330 * age)


def calculate_bmr(weight_kg: float, height_cm: float, age: int, gender: str) -> int:
    """
    Basal metabolic rate (Harris-Benedict). Genders other than male/female
    use the average of both equations.
    """
    gender = (gender or "").lower()
    if gender == "male":
        bmr = _harris_benedict_male(weight_kg, height_cm, age)
    elif gender == "female":
        bmr = _harris_benedict_female(weight_kg, height_cm, age)
    else:
        bmr = (
            _harris_benedict_male(weight_kg, height_cm, age)
            + _harris_benedict_female(weight_kg, height_cm, age)
        ) / 2
    return int(round(bmr))


def _change(current: float, previous: float):
    change = round(current - previous, 2)
    percent = round((current - previous) / previous * 100, 2) if previous > 0 else 0
    return change, percent


def calculate_progress(current: Dict[str, Any], previous: Dict[str, Any]) -> Dict[str, float]:
    """Compare two body metrics snapshots (each with demographics/body_composition)"""
    cur_demo = current.get("demographics") or {}
    prev_demo = previous.get("demographics") or {}
    cur_comp = current.get("body_composition") or {}
    prev_comp = previous.get("body_composition") or {}

    weight_change, weight_pct = _change(cur_demo.get("weight_kg") or 0, prev_demo.get("weight_kg") or 0)
    fat_change, fat_pct = _change(
        cur_comp.get("body_fat_percentage") or 0, prev_comp.get("body_fat_percentage") or 0
    )
    muscle_change, muscle_pct = _change(
        cur_comp.get("skeletal_muscle_mass_kg") or 0, prev_comp.get("skeletal_muscle_mass_kg") or 0
    )
    bmi_change, _ = _change(cur_demo.get("bmi") or 0, prev_demo.get("bmi") or 0)

    return {
        "weight_change": weight_change,
        "weight_change_percent": weight_pct,
        "body_fat_change": fat_change,
        "body_fat_change_percent": fat_pct,
        "muscle_mass_change": muscle_change,
        "muscle_mass_change_percent": muscle_pct,
        "bmi_change": bmi_change,
    }


def validate_body_metrics(demographics: Optional[dict], body_composition: Optional[dict]) -> Dict[str, Any]:
    """Plausibility checks; returns is_valid and a list of warnings"""
    demographics = demographics or {}
    body_composition = body_composition or {}
    warnings: List[str] = []

    bmi = demographics.get("bmi")
    if bmi:
        if bmi < 15:
            warnings.append("BMI is extremely low (below 15)")
        if bmi > 40:
            warnings.append("BMI is extremely high (above 40)")

    body_fat = body_composition.get("body_fat_percentage")
    if body_fat:
        if body_fat < 5:
            warnings.append("Body fat percentage is extremely low (below 5%)")
        if body_fat > 50:
            warnings.append("Body fat percentage is extremely high (above 50%)")

    weight = demographics.get("weight_kg")
    muscle = body_composition.get("skeletal_muscle_mass_kg")
    if weight and muscle:
        ratio = muscle / weight
        if ratio > 0.6:
            warnings.append("Muscle mass seems unusually high relative to total weight")
        if ratio < 0.2:
            warnings.append("Muscle mass seems unusually low relative to total weight")

    return {"is_valid": not warnings, "warnings": warnings}
