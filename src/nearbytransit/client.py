"""CTA Bus Tracker / Train Tracker prediction fetcher.

Requests go through a proxy exposing `/api/train?mapid=` and
`/api/bus?stpid=&top=`, which adds the API keys.
"""

import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Iterable, List, Optional, Sequence
from urllib.parse import urlencode, urljoin

import requests

from .config import (
    BUS_ENDPOINT,
    DEFAULT_POLICY,
    MAX_TRAIN_WORKERS,
    REQUEST_TIMEOUT_SECONDS,
    TRAIN_ENDPOINT,
    ArrivalPolicy,
    base_url_from_env,
)
from .cta import as_list, chunk, now
from .models import ApiResponseEvent, Arrival, CandidateStop, Mode, PredictionResult, RouteKey
from .normalizer import arrival_from_bus_prediction, arrival_from_train_eta
from .route_keys import distinct_routes
from .stops import CandidateStopIndex

logger = logging.getLogger(__name__)

REQUEST_FAILED = "request_failed"

FetchFn = Callable[[str], object]


class ApiResponseObserver:
    """
    Receives every upstream response the client sees.

    Subclass and override on_api_response; the default does nothing.
    """

    def on_api_response(self, event: ApiResponseEvent) -> None:
        pass


class CTAClient:
    """Fetches arrival predictions for candidate stops and selects the nearest per route."""

    def __init__(
        self,
        fetch_fn: Optional[FetchFn] = None,
        base_url: Optional[str] = None,
        observer: Optional[ApiResponseObserver] = None,
        policy: Optional[ArrivalPolicy] = None,
        train_endpoint: str = TRAIN_ENDPOINT,
        bus_endpoint: str = BUS_ENDPOINT,
    ):
        """
        Initialize the client.

        Args:
            fetch_fn: Callable taking a URL and returning an object with .json().
                Defaults to a requests session GET with a timeout.
            base_url: Proxy origin. Defaults to CTA_PROXY_BASE or http://localhost.
            observer: Optional ApiResponseObserver notified of each response.
            policy: Retention caps; defaults to ArrivalPolicy().
        """
        self._session: Optional[requests.Session] = None
        self._session_lock = threading.Lock()
        self.fetch_fn = fetch_fn or self._default_fetch
        self.base_url = base_url or base_url_from_env()
        self.observer = observer or ApiResponseObserver()
        self.policy = policy or DEFAULT_POLICY
        self.train_endpoint = train_endpoint
        self.bus_endpoint = bus_endpoint

    def _get_session(self) -> requests.Session:
        # Train workers share one session
        with self._session_lock:
            if self._session is None:
                self._session = requests.Session()
                self._session.headers.update({"Accept": "application/json"})
            return self._session

    def _default_fetch(self, url: str) -> requests.Response:
        response = self._get_session().get(url, timeout=REQUEST_TIMEOUT_SECONDS)
        response.raise_for_status()
        return response

    def close(self) -> None:
        """Release the HTTP session, if one was opened."""
        with self._session_lock:
            if self._session is not None:
                self._session.close()
                self._session = None

    def _url(self, endpoint: str, params: dict) -> str:
        base = urljoin(self.base_url.rstrip("/") + "/", endpoint.lstrip("/"))
        return f"{base}?{urlencode(params, safe=',')}"

    def _notify(self, mode: Mode, url: str, payload=None, error: Optional[str] = None) -> None:
        event = ApiResponseEvent(mode=mode, url=url, payload=payload, error=error)
        try:
            self.observer.on_api_response(event)
        except Exception as e:
            logger.warning(f"API response observer failed for {url}: {e}")

    def _fetch_json(self, mode: Mode, url: str) -> Optional[dict]:
        """GET and decode one URL; None (after logging and notifying) on any failure."""
        logger.debug(f"Fetching {url}")
        try:
            payload = self.fetch_fn(url).json()
        except Exception as e:
            logger.warning(f"Failed to fetch {mode.value} predictions from {url}: {e}")
            self._notify(mode, url, error=REQUEST_FAILED)
            return None
        self._notify(mode, url, payload=payload)
        return payload if isinstance(payload, dict) else None

    # Train

    def _fetch_station(self, stop: CandidateStop) -> List[Arrival]:
        url = self._url(self.train_endpoint, {"mapid": stop.lookup_id})
        payload = self._fetch_json(Mode.TRAIN, url)
        if payload is None:
            return []

        ctatt = payload.get("ctatt")
        if not isinstance(ctatt, dict):
            return []
        error_code = str(ctatt.get("errCd") or "0").strip()
        if error_code != "0":
            logger.warning(f"Train Tracker error {error_code} for station {stop.lookup_id}: {ctatt.get('errNm')}")
            return []

        return [
            arrival_from_train_eta(
                eta,
                fallback_stop_id=stop.lookup_id,
                fallback_station_id=stop.lookup_id,
                fallback_stop_name=stop.display_name,
                stop_latitude=stop.latitude,
                stop_longitude=stop.longitude,
            )
            for eta in as_list(ctatt.get("eta"))
        ]

    def fetch_train_predictions(self, stops: Sequence[CandidateStop]) -> PredictionResult:
        """
        Fetch Train Tracker arrivals for each station and keep the nearest per route.

        One request per station, issued concurrently. For each
        (route, destination) only the nearest station is kept (see
        ArrivalPolicy.train_stations_per_key), with its earliest arrivals.

        Args:
            stops: Candidate train stations with distance_miles set.

        Returns:
            PredictionResult keyed by station id.
        """
        # Platforms of one station share a map id; query each station once
        stops = list(CandidateStopIndex(stops))
        if not stops:
            return PredictionResult(arrivals=[], predictions_by_stop={}, selected_stop_ids=set())

        with ThreadPoolExecutor(max_workers=min(MAX_TRAIN_WORKERS, len(stops))) as executor:
            per_station = list(executor.map(self._fetch_station, stops))

        arrivals = [arrival for station_arrivals in per_station for arrival in station_arrivals]
        logger.debug(f"Received {len(arrivals)} train arrivals from {len(stops)} stations")
        return self._select_nearest(
            Mode.TRAIN, stops, arrivals, self.policy.train_stations_per_key
        )

    # Bus

    def fetch_bus_predictions(self, stops: Sequence[CandidateStop]) -> PredictionResult:
        """
        Fetch Bus Tracker arrivals for stops in batches and keep the two nearest per route.

        Stop ids are sent ArrivalPolicy.bus_batch_size at a time, one batch
        after another; a failed batch contributes nothing and does not stop
        the remaining batches.

        Args:
            stops: Candidate bus stops with distance_miles set.

        Returns:
            PredictionResult keyed by stop id.
        """
        stops = list(stops)
        stop_by_id = {stop.lookup_id: stop for stop in stops}
        arrivals: List[Arrival] = []

        for ids in chunk([stop.lookup_id for stop in stops], self.policy.bus_batch_size):
            url = self._url(self.bus_endpoint, {"stpid": ",".join(ids), "top": self.policy.bus_top})
            payload = self._fetch_json(Mode.BUS, url)
            if payload is None:
                continue

            response = payload.get("bustime-response")
            if not isinstance(response, dict):
                continue
            if response.get("error") and not response.get("prd"):
                logger.debug(f"Bus Tracker returned no predictions for {ids}: {response.get('error')}")

            for prediction in as_list(response.get("prd")):
                stop = stop_by_id.get(str(prediction.get("stpid"))) if isinstance(prediction, dict) else None
                arrivals.append(
                    arrival_from_bus_prediction(
                        prediction,
                        stop_latitude=stop.latitude if stop else None,
                        stop_longitude=stop.longitude if stop else None,
                        fallback_stop_name=stop.display_name if stop else "",
                    )
                )

        logger.debug(f"Received {len(arrivals)} bus arrivals from {len(stops)} stops")
        return self._select_nearest(Mode.BUS, stops, arrivals, self.policy.bus_stops_per_key)

    # Selection

    def _select_nearest(
        self,
        mode: Mode,
        stops: Sequence[CandidateStop],
        arrivals: Iterable[Arrival],
        stops_per_key: int,
    ) -> PredictionResult:
        """Keep, per route key, the nearest `stops_per_key` stops and their earliest arrivals."""
        arrivals = list(arrivals)
        index = CandidateStopIndex(stops)
        distance_by_id = index.distance_by_id()
        results: Dict[str, List[Arrival]] = {stop.lookup_id: [] for stop in index}
        selected = set()
        reference = now()

        by_key_and_stop: Dict[tuple, List[Arrival]] = {}
        for arrival in arrivals:
            key = (RouteKey.for_arrival(arrival), str(arrival.group_stop_id))
            by_key_and_stop.setdefault(key, []).append(arrival)

        for route_key, route_stops in distinct_routes(arrivals, mode).items():
            nearest = sorted(
                (entry.stop_id for entry in route_stops if entry.stop_id in distance_by_id),
                key=lambda stop_id: distance_by_id[stop_id],
            )[:stops_per_key]

            for stop_id in nearest:
                candidates = by_key_and_stop.get((route_key, stop_id), [])
                kept = sorted(candidates, key=lambda a: _prediction_sort_time(a, reference))
                kept = kept[:self.policy.arrivals_per_selected_stop]
                if not kept:
                    continue

                stop = index.find(stop_id)
                for arrival in kept:
                    if stop is not None and arrival.stop_latitude is None:
                        arrival.stop_latitude = stop.latitude
                    if stop is not None and arrival.stop_longitude is None:
                        arrival.stop_longitude = stop.longitude
                selected.add(stop_id)
                results.setdefault(stop_id, []).extend(kept)

        for stop_id in results:
            results[stop_id].sort(key=lambda a: _prediction_sort_time(a, reference))

        flat = [arrival for stop_arrivals in results.values() for arrival in stop_arrivals]
        logger.debug(f"Selected {len(selected)} {mode.value} stops with {len(flat)} arrivals")
        return PredictionResult(arrivals=flat, predictions_by_stop=results, selected_stop_ids=selected)


def _prediction_sort_time(arrival: Arrival, reference) -> float:
    """Arrival time, else now + countdown, else last."""
    value = arrival.sort_time()
    if not math.isinf(value):
        return value
    if arrival.eta_minutes is not None:
        return reference.timestamp() + arrival.eta_minutes * 60
    return value


def fetch_train_predictions(stops: Sequence[CandidateStop], **client_options) -> PredictionResult:
    """Fetch train predictions with a one-off CTAClient."""
    client = CTAClient(**client_options)
    try:
        return client.fetch_train_predictions(stops)
    finally:
        client.close()


def fetch_bus_predictions(stops: Sequence[CandidateStop], **client_options) -> PredictionResult:
    """Fetch bus predictions with a one-off CTAClient."""
    client = CTAClient(**client_options)
    try:
        return client.fetch_bus_predictions(stops)
    finally:
        client.close()
