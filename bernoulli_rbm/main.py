"""Command line entry point: train a model or inspect a saved one."""
import argparse
import logging
import os
import signal
import sys
from contextlib import nullcontext

import mlflow

from .config import load_config
from .constants import LOG_DATE_FORMAT, LOG_FORMAT
from .src.data_loader import load_samples
from .src.errors import RBMError
from .src.evaluate import evaluate_and_log, mse_category, reconstruction_error
from .src.model import BernoulliRBM, TrainingMethod
from .src.serialization import load_snapshot, save_snapshot
from .src.train import CancellationToken, TrainingRun, build_strategy
from .src.utils import make_generator, plot_training_metrics, set_seed, summarize_history

logger = logging.getLogger(__name__)

MLFLOW_EXPERIMENT_NAME = "bernoulli-rbm-training"
_mlruns_path = os.path.abspath("mlruns")
MLFLOW_TRACKING_URI = f"file:///{_mlruns_path.replace(os.sep, '/')}"

# Reconstruction RMSE per epoch is measured on at most this many samples
EVAL_SAMPLES = 500


def train_workflow(args) -> int:
    """Train a fresh model on a sample file, then save its snapshot and metrics plot."""
    config = load_config(args.config)
    model_cfg, training_cfg, path_cfg = config.model, config.training, config.paths

    method = TrainingMethod.parse(args.method) if args.method else model_cfg.training_method
    epochs = args.epochs if args.epochs is not None else training_cfg.epochs
    n_hidden = args.n_hidden if args.n_hidden is not None else model_cfg.n_hidden
    snapshot_path = args.snapshot or path_cfg.snapshot_path

    samples = load_samples(args.data)
    if training_cfg.seed is not None:
        set_seed(training_cfg.seed)
    rbm = BernoulliRBM(
        n_visible=samples.shape[1],
        n_hidden=n_hidden,
        learning_rate=model_cfg.learning_rate,
        batch_size=model_cfg.batch_size,
        training_method=method,
        generator=make_generator(training_cfg.seed),
    )
    logger.info(f"Created {rbm}")

    history = {"reconstruction_rmse": []}

    def on_epoch(epoch, total_epochs):
        history["reconstruction_rmse"].append(
            evaluate_and_log(rbm, samples, epoch, total_epochs, max_samples=EVAL_SAMPLES, use_mlflow=args.mlflow))

    cancel_token = CancellationToken()
    run = TrainingRun(
        rbm, samples, epochs,
        progress_callback=on_epoch,
        cancel_token=cancel_token,
        strategy=build_strategy(rbm, config.annealing, config.equilibrium),
        yield_every=training_cfg.yield_every,
    )

    if args.mlflow:
        mlflow.set_tracking_uri(MLFLOW_TRACKING_URI)
        mlflow.set_experiment(MLFLOW_EXPERIMENT_NAME)
        tracking = mlflow.start_run(run_name=f"rbm_{method.value}_h{n_hidden}")
    else:
        tracking = nullcontext()

    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: cancel_token.cancel())
    try:
        with tracking:
            if args.mlflow:
                mlflow.log_params({
                    "training_method": method.value,
                    "n_visible": rbm.n_visible,
                    "n_hidden": n_hidden,
                    "learning_rate": model_cfg.learning_rate,
                    "batch_size": model_cfg.batch_size,
                    "epochs": epochs,
                    "seed": training_cfg.seed,
                })

            report = run.run()
            energies = report.diagnostics.get("energy_history") or report.diagnostics.get("energy_trace")

            plot_path = None
            if history["reconstruction_rmse"]:
                plot_path = plot_training_metrics(history["reconstruction_rmse"], energies,
                                                  output_path=path_cfg.plot_path,
                                                  title=f"RBM Training ({method.value})")
            saved = save_snapshot(rbm, snapshot_path)

            if args.mlflow:
                mlflow.log_metrics({f"final_{k}": v for k, v in summarize_history(history).items()})
                mlflow.log_metric("epochs_completed", report.epochs_completed)
                if plot_path and os.path.exists(plot_path):
                    mlflow.log_artifact(plot_path, artifact_path="plots")
                if saved:
                    mlflow.log_artifact(snapshot_path, artifact_path="model")
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    status = "cancelled" if report.cancelled else "complete"
    logger.info(f"Training {status}: {report.epochs_completed}/{report.total_epochs} epochs, "
                f"{report.batches_completed} batches")
    return 0 if saved else 1


def reconstruct_workflow(args) -> int:
    """Reconstruct one sample with a saved model and report the error."""
    rbm = load_snapshot(args.snapshot)
    if rbm is None:
        return 1

    samples = load_samples(args.data, n_visible=rbm.n_visible)
    if not 0 <= args.index < samples.shape[0]:
        logger.error(f"Sample index {args.index} out of range for {samples.shape[0]} samples")
        return 1

    sample = samples[args.index]
    hidden, reconstruction = rbm.reconstruct(sample)
    metrics = reconstruction_error(sample, reconstruction)

    print(f"Sample {args.index}: {rbm.n_visible} visible units, {rbm.n_hidden} hidden units")
    print(f"MSE: {metrics.mse:.6f} ({mse_category(metrics.mse)})")
    print(f"Error: {metrics.error_percent:.2f}%")
    print(f"Units differing: {metrics.pixels_different} ({metrics.pixels_different_percent:.1f}%)")
    print(f"Most active hidden unit: {int(hidden.argmax())} ({float(hidden.max()):.3f})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bernoulli-rbm", description="Bernoulli RBM trainer")
    parser.add_argument("--config", type=str, default=None, help="YAML configuration file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    train_parser = subparsers.add_parser("train", help="Train a model on a sample file")
    train_parser.add_argument("--data", type=str, required=True, help=".npy, .npz or .csv sample file")
    train_parser.add_argument("--method", type=str, choices=[m.value for m in TrainingMethod], default=None)
    train_parser.add_argument("--epochs", type=int, default=None)
    train_parser.add_argument("--n-hidden", type=int, default=None)
    train_parser.add_argument("--snapshot", type=str, default=None, help="Where to write the snapshot")
    train_parser.add_argument("--mlflow", action="store_true", help="Track the run with MLflow")
    train_parser.set_defaults(func=train_workflow)

    reconstruct_parser = subparsers.add_parser("reconstruct", help="Reconstruct a sample with a saved model")
    reconstruct_parser.add_argument("--snapshot", type=str, required=True)
    reconstruct_parser.add_argument("--data", type=str, required=True)
    reconstruct_parser.add_argument("--index", type=int, default=0)
    reconstruct_parser.set_defaults(func=reconstruct_workflow)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )
    try:
        return args.func(args)
    except (RBMError, FileNotFoundError) as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
