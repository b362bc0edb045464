"""
Linear regression models for the Movie Explorer pipeline.

Two ways to fit the same ordinary least squares model:

- LocalModel fits in-process on materialized rows (scikit-learn).
- RemoteModel fits from aggregates computed by the data source (means and
  centered cross-product means), solving the small normal-equation system
  with numpy. Raw rows never leave the database.

Either model can predict in-process or be translated into SQL and evaluated
by the data source; both paths implement the same formula.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, List, Optional, Sequence, Tuple, Union
import pandas as pd
import numpy as np
from sklearn.linear_model import LinearRegression
from sklearn.metrics import r2_score, mean_absolute_error, mean_squared_error
from sklearn.preprocessing import StandardScaler

from .aggregator import group_summary
from .errors import FitError, QueryError
from .query import Column, Literal, TableProxy, all_of, find_sources
from .schema_inspector import CATEGORICAL, MOVIES_SCHEMA, TEXT, is_numeric_type
from .translate import RowKey, key_columns, predict_in_database, term_expression

logger = logging.getLogger(__name__)

INTERCEPT_LABEL = "(Intercept)"
ZERO_VARIANCE_TOLERANCE = 1e-12
DEFAULT_MAX_CONDITION = 1e10


@dataclass(frozen=True)
class Term:
    """One column of the design matrix and its fitted coefficient."""

    label: str
    column: str
    level: Any
    coefficient: float

    def values(self, rows: pd.DataFrame) -> pd.Series:
        """In-process twin of translate.term_expression()."""
        if self.level is None:
            return pd.to_numeric(rows[self.column], errors="coerce").astype(float)
        # nulls and unseen levels compare unequal, i.e. reference level
        return (rows[self.column] == self.level).astype(float)


@dataclass(frozen=True)
class FittedModel:
    """
    An immutable fitted linear model.

    Attributes:
        target: Response column
        predictors: Predictor columns, in the order given at fit time
        intercept: Fitted intercept
        terms: Design terms with coefficients (categoricals expanded to one
            indicator per non-reference level)
        levels: (column, all levels) for each categorical predictor; the first
            level is the reference
        n_samples: Number of complete rows used for fitting
    """

    target: str
    predictors: Tuple[str, ...]
    intercept: float
    terms: Tuple[Term, ...]
    levels: Tuple[Tuple[str, Tuple[Any, ...]], ...]
    n_samples: int

    kind: ClassVar[str] = "linear"

    @property
    def categorical(self) -> List[str]:
        return [column for column, _ in self.levels]

    @property
    def coefficients(self) -> Dict[str, float]:
        coefficients = {INTERCEPT_LABEL: self.intercept}
        coefficients.update((t.label, t.coefficient) for t in self.terms)
        return coefficients

    def evaluate(self, rows: pd.DataFrame) -> pd.Series:
        """Compute predictions in-process for materialized rows."""
        missing = [c for c in self.predictors if c not in rows.columns]
        if missing:
            raise QueryError(f"Rows are missing predictor columns: {', '.join(missing)}")

        prediction = pd.Series(self.intercept, index=rows.index, dtype=float)
        for term in self.terms:
            prediction = prediction + term.coefficient * term.values(rows)
        prediction.name = "fit"
        return prediction

    def to_dict(self) -> Dict:
        """Inspectable, JSON-serializable description of the fitted model."""
        return {
            "model": "linear_regression",
            "kind": self.kind,
            "target": self.target,
            "predictors": list(self.predictors),
            "intercept": self.intercept,
            "terms": [
                {
                    "label": t.label,
                    "column": t.column,
                    "level": t.level,
                    "coefficient": t.coefficient,
                }
                for t in self.terms
            ],
            "levels": {column: list(levels) for column, levels in self.levels},
            "n_samples": self.n_samples,
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


@dataclass(frozen=True)
class LocalModel(FittedModel):
    """OLS fitted in-process on a materialized sample."""

    kind: ClassVar[str] = "local"

    @classmethod
    def fit(
        cls,
        rows: pd.DataFrame,
        target: str,
        predictors: Sequence[str],
        categorical: Optional[Sequence[str]] = None
    ) -> "LocalModel":
        """
        Fit OLS on the complete rows of a materialized sample.

        Args:
            rows: Materialized rows
            target: Response column
            predictors: Predictor columns (numeric or categorical)
            categorical: Predictors to one-hot expand (default: inferred from
                the movies schema, then from dtypes)

        Returns:
            LocalModel

        Raises:
            FitError: Unknown columns, fewer rows than coefficients, or a
                rank-deficient design
        """
        predictors = _check_predictors(predictors, list(rows.columns), target)
        categorical = _resolve_categorical(predictors, categorical, kinds=_frame_kinds(rows))

        complete = rows.dropna(subset=[target] + predictors)
        levels = {
            c: tuple(sorted(_native(v) for v in complete[c].unique()))
            for c in categorical
        }
        specs = _term_specs(predictors, levels)

        n_samples = len(complete)
        _check_sample_size(n_samples, len(specs) + 1)

        X = pd.DataFrame(
            {label: Term(label, column, level, 0.0).values(complete) for label, column, level in specs},
            index=complete.index
        )
        y = pd.to_numeric(complete[target], errors="coerce").astype(float)

        _check_rank(X, [label for label, _, _ in specs])

        # Standardize so the solver's singular-value cutoff does not depend on units
        scaler = StandardScaler()
        X_scaled = scaler.fit_transform(X.to_numpy(dtype=float))

        model = LinearRegression()
        model.fit(X_scaled, y.to_numpy())

        coefficients = model.coef_ / scaler.scale_
        intercept = float(model.intercept_) - float(coefficients @ scaler.mean_)

        terms = tuple(
            Term(label, column, level, float(coef))
            for (label, column, level), coef in zip(specs, coefficients)
        )

        logger.info(f"   ✓ Local fit of {target} on {len(terms)} terms (n={n_samples})")

        return cls(
            target=target,
            predictors=tuple(predictors),
            intercept=intercept,
            terms=terms,
            levels=tuple(levels.items()),
            n_samples=n_samples,
        )


@dataclass(frozen=True)
class RemoteModel(FittedModel):
    """OLS fitted from aggregate statistics computed inside the data source."""

    kind: ClassVar[str] = "remote"

    @classmethod
    def fit(
        cls,
        proxy: TableProxy,
        target: str,
        predictors: Sequence[str],
        categorical: Optional[Sequence[str]] = None,
        max_condition: Optional[float] = None
    ) -> "RemoteModel":
        """
        Fit OLS without materializing rows.

        Three kinds of aggregate query are issued: one grouped count per
        categorical predictor (to learn its levels), one query of means, and
        one query of centered cross-product means. The resulting
        (terms x terms) system is scaled to a correlation matrix, checked for
        conditioning and solved with numpy.

        Args:
            proxy: Rows to fit on
            target: Response column
            predictors: Predictor columns (numeric or categorical)
            categorical: Predictors to one-hot expand (default: inferred)
            max_condition: Largest acceptable condition number of the scaled
                system (default: the session's max_condition_number)

        Returns:
            RemoteModel

        Raises:
            FitError: Unknown columns, fewer rows than coefficients, a
                zero-variance term or an ill-conditioned system
        """
        predictors = _check_predictors(predictors, proxy.columns, target)
        categorical = _resolve_categorical(predictors, categorical, kinds=_proxy_kinds(proxy))

        if max_condition is None:
            session = proxy.session
            max_condition = session.config.max_condition_number if session is not None else DEFAULT_MAX_CONDITION

        complete = proxy.filter(all_of(Column(c).not_null() for c in [target] + predictors))

        # 1. Levels of each categorical predictor
        levels = {}
        for column in categorical:
            counts = group_summary(complete, column, {"n": (column, "count")}).materialize()
            levels[column] = tuple(sorted(_native(v) for v in counts[column].tolist()))

        specs = _term_specs(predictors, levels)
        labels = [label for label, _, _ in specs]
        exprs = [term_expression(Term(label, column, level, 0.0)) for label, column, level in specs]
        y = Column(target)
        k = len(specs)

        # 2. Sample size and means
        aggregations = {"n": (target, "count"), "mean_y": (target, "mean")}
        for i, expr in enumerate(exprs):
            aggregations[f"mean_{i}"] = (expr, "mean")
        first = group_summary(complete, None, aggregations).materialize().iloc[0]

        n_samples = int(first["n"])
        _check_sample_size(n_samples, k + 1)

        means = np.array([float(first[f"mean_{i}"]) for i in range(k)])
        mean_y = float(first["mean_y"])

        # 3. Centered cross-product means
        centered = [expr - Literal(float(m)) for expr, m in zip(exprs, means)]
        centered_y = y - Literal(mean_y)
        aggregations = {}
        for i in range(k):
            for j in range(i, k):
                aggregations[f"xx_{i}_{j}"] = (centered[i] * centered[j], "mean")
            aggregations[f"xy_{i}"] = (centered[i] * centered_y, "mean")
        second = group_summary(complete, None, aggregations).materialize().iloc[0]

        cov = np.empty((k, k))
        for i in range(k):
            for j in range(i, k):
                cov[i, j] = cov[j, i] = float(second[f"xx_{i}_{j}"])
        cov_xy = np.array([float(second[f"xy_{i}"]) for i in range(k)])

        intercept, coefficients = _solve_normal_equations(cov, cov_xy, means, mean_y, labels, max_condition)

        terms = tuple(
            Term(label, column, level, float(coef))
            for (label, column, level), coef in zip(specs, coefficients)
        )

        logger.info(f"   ✓ In-database fit of {target} on {len(terms)} terms (n={n_samples})")

        return cls(
            target=target,
            predictors=tuple(predictors),
            intercept=float(intercept),
            terms=terms,
            levels=tuple(levels.items()),
            n_samples=n_samples,
        )


# =============================================================================
# Fitting helpers
# =============================================================================

def _native(value):
    """Convert numpy scalars to plain Python values (for JSON and SQL literals)."""
    return value.item() if hasattr(value, "item") else value


def _check_predictors(predictors: Sequence[str], available: Sequence[str], target: str) -> List[str]:
    predictors = list(predictors)
    if not predictors:
        raise FitError("At least one predictor is required", condition="no_predictors")
    if target in predictors:
        raise FitError(f"Target '{target}' cannot also be a predictor", predictor=target, condition="target_as_predictor")

    missing = [c for c in [target] + predictors if c not in available]
    if missing:
        raise FitError(
            f"Unknown column(s): {', '.join(missing)}",
            predictor=missing[0],
            condition="unknown_column"
        )
    return predictors


def _frame_kinds(rows: pd.DataFrame) -> Dict[str, bool]:
    """Column name -> True when the dtype is numeric."""
    return {c: pd.api.types.is_numeric_dtype(rows[c]) for c in rows.columns}


def _proxy_kinds(proxy: TableProxy) -> Dict[str, bool]:
    """Column name -> True when the source declares a numeric storage type."""
    kinds = {}
    for source in find_sources(proxy.node):
        for column, declared in source.column_types:
            kinds.setdefault(column, is_numeric_type(declared) if declared else True)
    return kinds


def _resolve_categorical(
    predictors: List[str],
    categorical: Optional[Sequence[str]],
    kinds: Dict[str, bool]
) -> List[str]:
    """
    Decide which predictors are one-hot expanded.

    An explicit list wins. Otherwise the movies schema decides for its own
    columns, and the dtype (or declared storage type) for anything else.
    """
    if categorical is not None:
        unknown = [c for c in categorical if c not in predictors]
        if unknown:
            raise FitError(
                f"Categorical column(s) not among the predictors: {', '.join(unknown)}",
                predictor=unknown[0],
                condition="unknown_column"
            )
        return [p for p in predictors if p in set(categorical)]

    resolved = []
    for p in predictors:
        kind = MOVIES_SCHEMA.kind_of(p)
        if kind in (CATEGORICAL, TEXT):
            resolved.append(p)
        elif kind is None and not kinds.get(p, True):
            resolved.append(p)
    return resolved


def _term_specs(predictors: List[str], levels: Dict[str, Tuple]) -> List[Tuple[str, str, Any]]:
    """(label, column, level) for every design term; treatment coding for categoricals."""
    specs = []
    for p in predictors:
        if p not in levels:
            specs.append((p, p, None))
            continue
        if len(levels[p]) < 2:
            raise FitError(
                f"Categorical predictor '{p}' has fewer than two levels in the complete rows",
                predictor=p,
                condition="single_level"
            )
        for level in levels[p][1:]:
            specs.append((f"{p}_{level}", p, level))
    return specs


def _check_sample_size(n_samples: int, n_coefficients: int):
    if n_samples < n_coefficients:
        raise FitError(
            f"Sample size {n_samples} is smaller than the number of coefficients {n_coefficients}",
            condition="insufficient_samples"
        )


def _check_rank(X: pd.DataFrame, labels: List[str]):
    """Raise FitError naming the first term that makes [1, X] rank-deficient."""
    design = np.column_stack([np.ones(len(X)), X.to_numpy(dtype=float)])

    # Scale columns so the rank tolerance does not depend on units
    scale = np.abs(design).max(axis=0)
    scale[scale == 0] = 1.0
    design = design / scale

    if np.linalg.matrix_rank(design) == design.shape[1]:
        return

    names = [INTERCEPT_LABEL] + labels
    for j in range(2, design.shape[1] + 1):
        if np.linalg.matrix_rank(design[:, :j]) < j:
            raise FitError(
                f"Design matrix is rank-deficient: '{names[j - 1]}' is a linear combination of earlier terms",
                predictor=names[j - 1],
                condition="rank_deficient"
            )


def _solve_normal_equations(cov, cov_xy, means, mean_y, labels, max_condition):
    """
    Solve cov @ b = cov_xy after scaling cov to a correlation matrix.

    Returns:
        (intercept, coefficients)
    """
    variances = np.diag(cov)
    for label, variance, mean in zip(labels, variances, means):
        if variance <= ZERO_VARIANCE_TOLERANCE * max(1.0, mean ** 2):
            raise FitError(
                f"Term '{label}' has zero variance in the complete rows",
                predictor=label,
                condition="zero_variance"
            )

    scale = np.sqrt(variances)
    corr = cov / np.outer(scale, scale)

    condition = np.linalg.cond(corr)
    if not np.isfinite(condition) or condition > max_condition:
        offending = labels[-1]
        for j in range(2, len(labels) + 1):
            sub = np.linalg.cond(corr[:j, :j])
            if not np.isfinite(sub) or sub > max_condition:
                offending = labels[j - 1]
                break
        raise FitError(
            f"Aggregate system is ill-conditioned (condition number {condition:.3g} > {max_condition:.3g}); "
            f"'{offending}' is nearly collinear with earlier terms",
            predictor=offending,
            condition="ill_conditioned"
        )

    scaled = np.linalg.solve(corr, cov_xy / scale)
    coefficients = scaled / scale
    intercept = mean_y - float(coefficients @ means)
    return intercept, coefficients


# =============================================================================
# Prediction and evaluation
# =============================================================================

def predict(
    model: FittedModel,
    rows: Union[TableProxy, pd.DataFrame],
    in_database: Optional[bool] = None,
    id_col: Optional[RowKey] = None,
    output: str = "fit"
) -> pd.Series:
    """
    Predict with a fitted model.

    Args:
        model: Fitted model
        rows: Proxy (or, for in-process prediction, materialized rows)
        in_database: Translate to SQL and let the data source compute the
            predictions (default: True for RemoteModel, False otherwise)
        id_col: Row identifier column (or columns) used as the index of the result
        output: Name of the returned Series

    Returns:
        pd.Series: Predicted values, indexed by id_col when given
    """
    if in_database is None:
        in_database = isinstance(model, RemoteModel)
    keys = key_columns(id_col)

    if in_database:
        if not isinstance(rows, TableProxy):
            raise QueryError("In-database prediction needs a TableProxy")
        result = predict_in_database(model, rows, id_col=keys, output=output).materialize()
        predictions = pd.to_numeric(result[output], errors="coerce").astype(float)
    else:
        if isinstance(rows, TableProxy):
            needed = list(dict.fromkeys(keys + list(model.predictors)))
            rows = rows.select(*needed).materialize()
        result = rows
        predictions = model.evaluate(rows)

    if len(keys) == 1:
        predictions = pd.Series(predictions.to_numpy(), index=pd.Index(result[keys[0]], name=keys[0]))
    elif keys:
        predictions = pd.Series(predictions.to_numpy(), index=pd.MultiIndex.from_frame(result[keys]))
    predictions.name = output
    return predictions


def compare_predictions(
    proxy: TableProxy,
    local_model: FittedModel,
    remote_model: FittedModel,
    id_col: Optional[RowKey] = None
) -> pd.DataFrame:
    """
    Score the same rows in-process with one model and in the database with another.

    Args:
        proxy: Rows to score
        local_model: Model evaluated in-process
        remote_model: Model translated to SQL and evaluated by the data source
        id_col: Row identifier column(s) to join on (default: the session's
            configured id_columns)

    Returns:
        pd.DataFrame: Columns (*id_col, actual, local_fit, remote_fit), joined on id_col

    Raises:
        QueryError: If id_col does not identify rows uniquely
    """
    if id_col is None:
        id_col = proxy.session.config.id_columns if proxy.session is not None else ("name", "year")
    keys = key_columns(id_col)

    needed = list(dict.fromkeys(keys + [local_model.target] + list(local_model.predictors)))
    rows = proxy.select(*needed).materialize()

    local = rows[keys].copy()
    local["actual"] = pd.to_numeric(rows[local_model.target], errors="coerce").astype(float)
    local["local_fit"] = local_model.evaluate(rows)

    remote = predict_in_database(remote_model, proxy, id_col=keys, output="remote_fit").materialize()
    remote["remote_fit"] = pd.to_numeric(remote["remote_fit"], errors="coerce").astype(float)

    try:
        merged = local.merge(remote, on=keys, how="inner", validate="one_to_one")
    except pd.errors.MergeError as e:
        raise QueryError(f"Row identifier ({', '.join(keys)}) is not unique: {e}") from e

    logger.info(f"   ✓ Compared {len(merged)} predictions on ({', '.join(keys)})")
    return merged


def predictions_agree(
    comparison: pd.DataFrame,
    rtol: float = 1e-6,
    atol: float = 1e-9,
    left: str = "local_fit",
    right: str = "remote_fit"
) -> bool:
    """True if two prediction columns agree row by row (NaN matches NaN)."""
    return bool(np.allclose(
        comparison[left].to_numpy(dtype=float),
        comparison[right].to_numpy(dtype=float),
        rtol=rtol,
        atol=atol,
        equal_nan=True
    ))


def evaluate_model(model: FittedModel, rows: pd.DataFrame) -> Dict[str, float]:
    """
    Score a model on materialized rows (complete rows only).

    Returns:
        dict: r2, mae, rmse and n_samples
    """
    actual = pd.to_numeric(rows[model.target], errors="coerce").astype(float)
    predicted = model.evaluate(rows)
    mask = actual.notna() & predicted.notna()
    actual, predicted = actual[mask], predicted[mask]

    if len(actual) < 2:
        return {"r2": np.nan, "mae": np.nan, "rmse": np.nan, "n_samples": int(len(actual))}

    metrics = {
        "r2": float(r2_score(actual, predicted)),
        "mae": float(mean_absolute_error(actual, predicted)),
        "rmse": float(np.sqrt(mean_squared_error(actual, predicted))),
        "n_samples": int(len(actual)),
    }

    logger.info(f"      R²: {metrics['r2']:.4f}")
    logger.info(f"      MAE: {metrics['mae']:.4f}")
    logger.info(f"      RMSE: {metrics['rmse']:.4f}")

    return metrics


def parse_model(data: Union[Dict, str]) -> FittedModel:
    """
    Rebuild a fitted model from its to_dict() (or to_json()) description.

    Raises:
        ValueError: If the description is not a linear regression model
    """
    if isinstance(data, str):
        data = json.loads(data)

    if data.get("model") != "linear_regression":
        raise ValueError(f"Unsupported model description: {data.get('model')!r}")

    model_class = {"local": LocalModel, "remote": RemoteModel}.get(data.get("kind"), FittedModel)
    return model_class(
        target=data["target"],
        predictors=tuple(data["predictors"]),
        intercept=float(data["intercept"]),
        terms=tuple(
            Term(t["label"], t["column"], t["level"], float(t["coefficient"]))
            for t in data["terms"]
        ),
        levels=tuple((column, tuple(levels)) for column, levels in data.get("levels", {}).items()),
        n_samples=int(data["n_samples"]),
    )
