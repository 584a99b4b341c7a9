"""
Predictive analytics for the dashboard
Churn risk, revenue forecast and ranked recommendations
"""

import logging
from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from statistics import mean
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Appointment, Barbershop, Client
from ...shared.enums import AppointmentStatus
from ..scheduling import slots
from ..scheduling.repository import AppointmentRepository
from .schemas import ClientPattern, Insights, Predictions, RecommendedAction, ScheduleInsight

logger = logging.getLogger(__name__)

HIGH_RISK_WEIGHT = 0.7
MEDIUM_RISK_WEIGHT = 0.3
LOW_OCCUPANCY = 0.3
HIGH_OCCUPANCY = 0.8
UPSELL_MIN_VISITS = 3
UPSELL_TOP = 10
UPSELL_CONVERSION = 0.3
WEEKS_PER_MONTH = 4
MAX_RECOMMENDATIONS = 5
DEFAULT_CYCLE_DAYS = 30
HISTORY_DAYS = 90


def _day_revenue(insights: list[ScheduleInsight]) -> dict[str, float]:
    revenue: dict[str, float] = defaultdict(float)
    for insight in insights:
        revenue[insight.day_of_week] += insight.potential_revenue * insight.occupation_rate
    return revenue


def most_profitable_day(insights: list[ScheduleInsight]) -> str:
    revenue = _day_revenue(insights)
    return max(revenue, key=revenue.get) if revenue else "N/A"


def least_profitable_day(insights: list[ScheduleInsight]) -> str:
    revenue = _day_revenue(insights)
    return min(revenue, key=revenue.get) if revenue else "N/A"


def predict(client_patterns: list[ClientPattern], schedule_insights: list[ScheduleInsight]) -> Predictions:
    """Turn client patterns and slot occupancy into forecasts and the top recommendations"""
    high_risk = [c for c in client_patterns if c.churn_risk == "high"]
    medium_risk = [c for c in client_patterns if c.churn_risk == "medium"]

    total_lifetime_value = sum(c.lifetime_value for c in client_patterns)
    total_visits = sum(c.total_visits for c in client_patterns)
    average_visit_value = total_lifetime_value / total_visits if total_visits else 0.0

    monthly_visits = sum(30 / (c.average_cycle or DEFAULT_CYCLE_DAYS) for c in client_patterns)
    predicted_monthly_revenue = monthly_visits * average_visit_value

    actions: list[RecommendedAction] = []

    if high_risk:
        actions.append(
            RecommendedAction(
                type="retention",
                description=f"Urgent retention campaign for {len(high_risk)} high-risk clients",
                priority="high",
                potential_impact=sum(c.lifetime_value * HIGH_RISK_WEIGHT for c in high_risk),
                details={
                    "clientIds": [c.client_id for c in high_risk],
                    "suggestedDiscount": "15-20%",
                    "expectedRetention": "60%",
                },
            )
        )
    if medium_risk:
        actions.append(
            RecommendedAction(
                type="retention",
                description=f"Proactive reminder for {len(medium_risk)} medium-risk clients",
                priority="medium",
                potential_impact=sum(c.lifetime_value * MEDIUM_RISK_WEIGHT for c in medium_risk),
                details={
                    "clientIds": [c.client_id for c in medium_risk],
                    "expectedRetention": "80%",
                },
            )
        )

    low_slots = [s for s in schedule_insights if s.occupation_rate < LOW_OCCUPANCY]
    if low_slots:
        actions.append(
            RecommendedAction(
                type="schedule_optimization",
                description=f"Run promotions for {len(low_slots)} low-occupancy time slots",
                priority="medium",
                potential_impact=sum(s.potential_revenue * 0.5 for s in low_slots) * WEEKS_PER_MONTH,
                details={
                    "slots": [
                        {
                            "day": s.day_of_week,
                            "time": s.time_slot,
                            "currentOccupation": f"{round(s.occupation_rate * 100)}%",
                            "suggestedDiscount": "20%",
                        }
                        for s in low_slots
                    ]
                },
            )
        )

    frequent = sorted(
        (c for c in client_patterns if c.total_visits >= UPSELL_MIN_VISITS and c.churn_risk == "low"),
        key=lambda c: c.lifetime_value,
        reverse=True,
    )[:UPSELL_TOP]
    if frequent:
        actions.append(
            RecommendedAction(
                type="upsell",
                description=f"Upsell opportunity for {len(frequent)} loyal clients",
                priority="medium",
                potential_impact=len(frequent) * average_visit_value * UPSELL_CONVERSION,
                details={
                    "clientIds": [c.client_id for c in frequent],
                    "suggestedServices": ["Premium combo", "Monthly plan"],
                    "expectedConversion": "25%",
                },
            )
        )

    actions.sort(key=lambda a: a.potential_impact, reverse=True)

    count = len(client_patterns)
    insights = Insights(
        average_client_cycle=round(mean(c.average_cycle for c in client_patterns)) if count else 0,
        average_lifetime_value=round(total_lifetime_value / count) if count else 0,
        retention_rate=round((count - len(high_risk)) / count * 100) if count else 0,
        most_profitable_day=most_profitable_day(schedule_insights),
        least_profitable_day=least_profitable_day(schedule_insights),
    )

    return Predictions(
        monthly_revenue=round(predicted_monthly_revenue),
        churn_risk_clients=len(high_risk) + len(medium_risk),
        recommended_actions=actions[:MAX_RECOMMENDATIONS],
        insights=insights,
    )


def churn_risk_for(days_since_last: int, cycle: float) -> str:
    if days_since_last > cycle * 2:
        return "high"
    if days_since_last > cycle * 1.5:
        return "medium"
    return "low"


def suggested_action_for(occupation_rate: float) -> str:
    if occupation_rate < LOW_OCCUPANCY:
        return "promote"
    if occupation_rate > HIGH_OCCUPANCY:
        return "premium_pricing"
    return "maintain"


class AnalyticsService:
    """Builds analytics inputs from stored appointments"""

    def __init__(self, db: Session):
        self.db = db

    def client_patterns(self, barbershop_id: int, today: Optional[date] = None) -> list[ClientPattern]:
        today = today or date.today()
        rows = (
            self.db.query(Appointment.client_id, Appointment.appointment_date, Appointment.price)
            .join(Client, Client.id == Appointment.client_id)
            .filter(
                Appointment.barbershop_id == barbershop_id,
                Appointment.status == AppointmentStatus.COMPLETED,
                Appointment.appointment_date <= today,
            )
            .order_by(Appointment.client_id, Appointment.appointment_date)
            .all()
        )

        visits: dict[int, list[tuple[date, Decimal]]] = defaultdict(list)
        for client_id, day, price in rows:
            visits[client_id].append((day, price or Decimal("0")))

        patterns = []
        for client_id, history in visits.items():
            days = [d for d, _ in history]
            gaps = [(b - a).days for a, b in zip(days, days[1:]) if (b - a).days > 0]
            cycle = round(mean(gaps), 1) if gaps else DEFAULT_CYCLE_DAYS
            last_visit = days[-1]
            patterns.append(
                ClientPattern(
                    client_id=str(client_id),
                    average_cycle=cycle,
                    last_visit=last_visit,
                    next_predicted_visit=last_visit + timedelta(days=round(cycle)),
                    churn_risk=churn_risk_for((today - last_visit).days, cycle),
                    total_visits=len(history),
                    lifetime_value=float(sum(p for _, p in history)),
                )
            )
        return patterns

    def schedule_insights(self, barbershop_id: int, today: Optional[date] = None) -> list[ScheduleInsight]:
        """Occupancy per weekday and hour over the recent history window"""
        today = today or date.today()
        start = today - timedelta(days=HISTORY_DAYS)
        barbershop = self.db.get(Barbershop, barbershop_id)
        barbers = max(len(AppointmentRepository.list_barbers(self.db, barbershop_id)), 1)

        appointments = (
            self.db.query(Appointment.appointment_date, Appointment.start_time, Appointment.price)
            .filter(
                Appointment.barbershop_id == barbershop_id,
                Appointment.appointment_date >= start,
                Appointment.appointment_date < today,
                Appointment.status != AppointmentStatus.CANCELLED,
            )
            .all()
        )
        if not appointments:
            return []

        average_price = float(mean(p or 0 for _, _, p in appointments))
        booked: dict[tuple[str, int], int] = defaultdict(int)
        for day, start_time, _ in appointments:
            booked[(slots.WEEKDAYS[day.weekday()], start_time.hour)] += 1

        # Number of times each weekday occurred in the window
        occurrences: dict[str, int] = defaultdict(int)
        opening_hours: dict[str, tuple[int, int]] = {}
        for offset in range(HISTORY_DAYS):
            day = start + timedelta(days=offset)
            weekday = slots.WEEKDAYS[day.weekday()]
            occurrences[weekday] += 1
            if weekday not in opening_hours:
                window = slots.working_window(day, barbershop.opening_hours if barbershop else None)
                if window:
                    opening_hours[weekday] = window

        insights = []
        for weekday in slots.WEEKDAYS:
            window = opening_hours.get(weekday)
            if not window:
                continue
            open_minute, close_minute = window
            for hour in range(open_minute // 60, (close_minute + 59) // 60):
                capacity = occurrences[weekday] * barbers
                rate = min(booked[(weekday, hour)] / capacity, 1.0) if capacity else 0.0
                insights.append(
                    ScheduleInsight(
                        time_slot=f"{hour:02d}:00",
                        day_of_week=weekday,
                        occupation_rate=round(rate, 3),
                        suggested_action=suggested_action_for(rate),
                        potential_revenue=round(average_price * barbers, 2),
                    )
                )
        return insights
