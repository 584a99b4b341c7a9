"""Analytics schemas - camelCase on the wire to match the dashboard payloads"""

from datetime import date
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class ClientPattern(BaseModel):
    client_id: str = Field(..., alias="clientId")
    average_cycle: float = Field(30, alias="averageCycle", ge=0)
    last_visit: Optional[date] = Field(None, alias="lastVisit")
    next_predicted_visit: Optional[date] = Field(None, alias="nextPredictedVisit")
    churn_risk: Literal["low", "medium", "high"] = Field("low", alias="churnRisk")
    total_visits: int = Field(0, alias="totalVisits", ge=0)
    lifetime_value: float = Field(0, alias="lifetimeValue", ge=0)

    class Config:
        populate_by_name = True


class ScheduleInsight(BaseModel):
    time_slot: str = Field(..., alias="timeSlot")
    day_of_week: str = Field(..., alias="dayOfWeek")
    occupation_rate: float = Field(..., alias="occupationRate", ge=0)
    suggested_action: Optional[str] = Field(None, alias="suggestedAction")
    potential_revenue: float = Field(0, alias="potentialRevenue", ge=0)

    class Config:
        populate_by_name = True


class AnalyticsRequest(BaseModel):
    """Patterns may be sent precomputed; when omitted they are built from stored appointments"""

    client_patterns: Optional[list[ClientPattern]] = Field(None, alias="clientPatterns")
    schedule_insights: Optional[list[ScheduleInsight]] = Field(None, alias="scheduleInsights")
    barbershop_id: int = Field(..., alias="barbershopId")

    class Config:
        populate_by_name = True


class RecommendedAction(BaseModel):
    type: Literal["retention", "schedule_optimization", "upsell"]
    description: str
    priority: Literal["high", "medium", "low"]
    potential_impact: float = Field(..., serialization_alias="potentialImpact")
    details: dict[str, Any] = Field(default_factory=dict)


class Insights(BaseModel):
    average_client_cycle: int = Field(..., serialization_alias="averageClientCycle")
    average_lifetime_value: int = Field(..., serialization_alias="averageLifetimeValue")
    retention_rate: int = Field(..., serialization_alias="retentionRate")
    most_profitable_day: str = Field(..., serialization_alias="mostProfitableDay")
    least_profitable_day: str = Field(..., serialization_alias="leastProfitableDay")


class Predictions(BaseModel):
    monthly_revenue: int = Field(..., serialization_alias="monthlyRevenue")
    churn_risk_clients: int = Field(..., serialization_alias="churnRiskClients")
    recommended_actions: list[RecommendedAction] = Field(..., serialization_alias="recommendedActions")
    insights: Insights


class AnalyticsResponse(BaseModel):
    predictions: Predictions
    client_patterns: list[ClientPattern] = Field(default_factory=list, serialization_alias="clientPatterns")
    schedule_insights: list[ScheduleInsight] = Field(default_factory=list, serialization_alias="scheduleInsights")
