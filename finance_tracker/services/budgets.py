"""Budget progress evaluation."""
import math
from collections import defaultdict
from datetime import datetime, timezone, tzinfo
from typing import Dict, Iterable, List
from finance_tracker.models.budget import Budget
from finance_tracker.models.report import BudgetProgress
from finance_tracker.models.transaction import Transaction
from finance_tracker.utils.timestamp import local_date


def index_by_category(transactions: Iterable[Transaction]) -> Dict[str, List[Transaction]]:
    """Group transactions by category id so each budget scans only its own category."""
    index: Dict[str, List[Transaction]] = defaultdict(list)
    for tx in transactions:
        index[tx.category_id].append(tx)
    return dict(index)


class BudgetEvaluator:
    """Computes spent amount and percentage consumed for budgets.
    
    The evaluation date is fixed at construction; open-ended budgets run up to
    it, so the same budget reports more spending as `as_of` moves forward.
    """
    
    def __init__(
        self,
        index: Dict[str, List[Transaction]],
        as_of: datetime,
        tz: tzinfo = timezone.utc,
    ):
        self.index = index
        self.as_of = as_of
        self.tz = tz
        self.as_of_date = local_date(as_of, tz)
    
    def spent(self, budget: Budget) -> float:
        """Sum of magnitudes of matching transactions inside the budget window."""
        if budget.period_start > self.as_of_date:
            return 0.0
        
        upper = budget.period_end if budget.period_end is not None else self.as_of_date
        amounts = [
            tx.magnitude
            for tx in self.index.get(budget.category_id, ())
            if tx.type == budget.type
            and budget.period_start <= local_date(tx.date, self.tz) <= upper
        ]
        return round(math.fsum(amounts), 2)
    
    def evaluate(self, budget: Budget) -> BudgetProgress:
        spent = self.spent(budget)
        if budget.amount > 0:
            progress = round(spent / budget.amount * 100, 2)
        else:
            progress = 0.0
        
        return BudgetProgress(
            budget_id=budget.id,
            name=budget.name,
            category_id=budget.category_id,
            limit=budget.amount,
            spent=spent,
            progress_percent=progress,
        )
    
    def evaluate_all(self, budgets: Iterable[Budget]) -> List[BudgetProgress]:
        return [self.evaluate(b) for b in budgets]
